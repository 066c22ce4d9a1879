"""Tests for FastAPI app entry point."""
from pathlib import Path

from fastapi.testclient import TestClient

from karl_selfie.core.config import Settings


def test_health_endpoint_returns_200() -> None:
    """Health check endpoint should return HTTP 200."""
    from karl_selfie.main import app
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_status_ok() -> None:
    """Health check response should contain status=ok."""
    from karl_selfie.main import app
    client = TestClient(app)
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"


def test_health_reports_missing_service() -> None:
    from karl_selfie.main import app

    if hasattr(app.state, "render_service"):
        del app.state.render_service
    data = TestClient(app).get("/health").json()
    assert data["services"] == {"render": "unavailable", "reference_image": "missing"}


def test_health_reports_ready_service(settings: Settings) -> None:
    from karl_selfie.main import app
    from karl_selfie.services.render import RenderService
    from karl_selfie.services.scenes import DEFAULT_SCENES, SceneCatalog

    app.state.render_service = RenderService(settings, SceneCatalog(DEFAULT_SCENES))
    try:
        data = TestClient(app).get("/health").json()
    finally:
        del app.state.render_service
    assert data["services"] == {"render": "ok", "reference_image": "ok"}


def test_health_reports_missing_reference(settings: Settings, tmp_path: Path) -> None:
    from karl_selfie.main import app
    from karl_selfie.services.render import RenderService
    from karl_selfie.services.scenes import DEFAULT_SCENES, SceneCatalog

    settings = settings.model_copy(update={"reference_dir": tmp_path / "missing"})
    app.state.render_service = RenderService(settings, SceneCatalog(DEFAULT_SCENES))
    try:
        data = TestClient(app).get("/health").json()
    finally:
        del app.state.render_service
    assert data["services"]["reference_image"] == "missing"


def test_lifespan_initializes_render_service() -> None:
    """Entering the client context runs startup and registers the service."""
    from karl_selfie.main import app
    from karl_selfie.services.render import RenderService

    with TestClient(app) as client:
        assert isinstance(app.state.render_service, RenderService)
        assert client.get("/health").json()["services"]["render"] == "ok"
    del app.state.render_service


def test_app_has_correct_title() -> None:
    """FastAPI app should have the project title."""
    from karl_selfie.main import app
    assert app.title == "Karl Selfie Generator"


def test_app_has_cors_middleware() -> None:
    """App should allow requests from frontend origin."""
    from karl_selfie.main import app
    from starlette.middleware.cors import CORSMiddleware
    middleware_classes = [m.cls for m in app.user_middleware]
    assert CORSMiddleware in middleware_classes


def test_cors_preflight_allows_frontend_origin() -> None:
    from karl_selfie.main import app

    resp = TestClient(app).options(
        "/api/render",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_unknown_route_uses_error_body() -> None:
    from karl_selfie.main import app

    resp = TestClient(app).get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Not Found"}
