"""Render and scene catalog API router."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from karl_selfie.core.errors import KarlSelfieError
from karl_selfie.models.render import ErrorResponse, RenderResult
from karl_selfie.models.scene import Scene
from karl_selfie.services.render import RenderService
from karl_selfie.services.scenes import SceneCatalog, SceneNotFound, get_scene_catalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["render"])

ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_render_service(request: Request) -> RenderService:
    """FastAPI dependency: retrieve RenderService from app.state.

    Returns HTTP 503 if the service was not initialized at startup.
    """
    svc: RenderService | None = getattr(request.app.state, "render_service", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="Render service not initialized.")
    return svc


def get_catalog(request: Request) -> SceneCatalog:
    svc: RenderService | None = getattr(request.app.state, "render_service", None)
    return svc.catalog if svc is not None else get_scene_catalog()


@router.post(
    "/render",
    response_model=RenderResult,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
)
async def render(
    selfie: Optional[UploadFile] = File(None),
    customPrompt: Optional[str] = Form(None),  # noqa: N803 - multipart field name
    sceneIndex: Optional[str] = Form(None),  # noqa: N803 - multipart field name
    service: RenderService = Depends(get_render_service),
) -> RenderResult:
    """Generate a composite of the selfie and Karl in the requested scene.

    Either ``customPrompt`` (free text) or ``sceneIndex`` (catalog scene id)
    selects the scene; a non-blank custom prompt wins.

    Raises:
        KarlSelfieError: Mapped to a JSON ``{error, details?}`` body by the
            application exception handler (400 validation, 500 otherwise).
    """
    photo = await selfie.read() if selfie is not None else b""

    try:
        render_request = service.build_request(photo, customPrompt, sceneIndex)
        logger.info(
            "Render requested: %s (%d bytes)",
            selfie.filename if selfie is not None else "-",
            len(photo),
        )
        return await run_in_threadpool(service.render, render_request)
    except KarlSelfieError as exc:
        logger.error(
            "render failed: %s",
            exc.message,
            exc_info=exc.status_code >= 500,
            extra={
                "component": "RenderRouter",
                "error_type": type(exc).__name__,
                "status_code": exc.status_code,
            },
        )
        raise
    except Exception as exc:
        logger.error(
            "render failed unexpectedly",
            exc_info=True,
            extra={"component": "RenderRouter", "error_type": type(exc).__name__},
        )
        raise KarlSelfieError("Internal server error", details=type(exc).__name__) from exc


@router.get("/scenes", response_model=list[Scene], response_model_by_alias=True)
async def list_scenes(catalog: SceneCatalog = Depends(get_catalog)) -> list[Scene]:
    """Return the scene catalog in display order."""
    return list(catalog.list())


@router.get("/scenes/random", response_model=Scene, response_model_by_alias=True)
async def random_scene(catalog: SceneCatalog = Depends(get_catalog)) -> Scene:
    """Return a uniformly chosen scene."""
    return catalog.random()


@router.get(
    "/scenes/{scene_id}",
    response_model=Scene,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse}},
)
async def get_scene(scene_id: int, catalog: SceneCatalog = Depends(get_catalog)) -> Scene:
    """Return one scene by id."""
    try:
        return catalog.by_id(scene_id)
    except SceneNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
