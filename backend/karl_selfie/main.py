"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from karl_selfie.core.config import get_settings
from karl_selfie.core.errors import KarlSelfieError, MissingPhoto, ReferenceAssetMissing
from karl_selfie.core.logging import setup_logging
from karl_selfie.services.reference import find_reference_image

# Setup logging
logger = setup_logging("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize services at startup, clean up at shutdown."""
    settings = get_settings()
    try:
        from karl_selfie.services.render import RenderService
        from karl_selfie.services.scenes import get_scene_catalog

        app.state.render_service = RenderService(settings=settings, catalog=get_scene_catalog())
        logger.info("Services initialized successfully")
    except Exception as exc:
        logger.error(
            "Service initialization failed, running in degraded mode",
            exc_info=True,
            extra={"component": "main", "error_type": type(exc).__name__},
        )
        # Continue without services; /api/render returns 503 until fixed

    yield
    # Nothing to release: requests hold no shared resources


# Create FastAPI app
app = FastAPI(
    title="Karl Selfie Generator",
    description="Places the user and Karl der Kasten into AI-generated scenes",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.frontend_port}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KarlSelfieError)
async def karl_selfie_error_handler(request: Request, exc: KarlSelfieError) -> JSONResponse:
    """Convert application errors to ``{error, details?}`` bodies."""
    body: dict = {"error": exc.message}
    if exc.status_code >= 500 and exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Keep the ``{error}`` body shape for framework-raised HTTP errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed form fields as 400 ``{error}`` instead of 422."""
    fields = {str(err["loc"][-1]) for err in exc.errors() if err.get("loc")}
    message = MissingPhoto().message if "selfie" in fields else "Invalid request"
    logger.warning(
        "Request validation failed: %s",
        ", ".join(sorted(fields)) or "-",
        extra={"component": "main", "error_type": type(exc).__name__, "status_code": 400},
    )
    return JSONResponse(status_code=400, content={"error": message})

# Register routers
from karl_selfie.api.render import router as render_router  # noqa: E402

app.include_router(render_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports whether the render service is initialized and the Karl
    reference image can be found. Always returns HTTP 200.
    """
    svc = getattr(request.app.state, "render_service", None)
    reference_ok = False
    if svc is not None:
        try:
            find_reference_image(svc.settings.reference_dir)
            reference_ok = True
        except ReferenceAssetMissing:
            reference_ok = False

    logger.info("Health check requested")
    return {
        "status": "ok",
        "version": app.version,
        "services": {
            "render": "ok" if svc is not None else "unavailable",
            "reference_image": "ok" if reference_ok else "missing",
        },
    }
