"""HTTP client for POST /api/render."""
import logging
from typing import Optional

import httpx

from karl_selfie.core.errors import RenderRequestFailed
from karl_selfie.models.camera import CapturedPhoto
from karl_selfie.models.render import RenderResult
from karl_selfie.models.scene import Scene

logger = logging.getLogger(__name__)

DEFAULT_RENDER_URL = "http://localhost:8000/api/render"


class RenderClient:
    """Submits a captured photo with a scene to the render endpoint."""

    def __init__(
        self,
        render_url: str = DEFAULT_RENDER_URL,
        timeout: float = 90.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.render_url = render_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def render(
        self,
        photo: CapturedPhoto,
        custom_prompt: Optional[str] = None,
        scene_id: Optional[int] = None,
    ) -> RenderResult:
        """Upload the photo and return the generated image.

        Raises:
            RenderRequestFailed: The server answered with an error status, an
                unreadable body, or could not be reached in time.
        """
        data: dict[str, str] = {}
        if custom_prompt is not None and custom_prompt.strip():
            data["customPrompt"] = custom_prompt.strip()
        elif scene_id is not None:
            data["sceneIndex"] = str(scene_id)
        files = {"selfie": (photo.filename, photo.data, photo.mime_type)}

        try:
            async with self._client() as client:
                response = await client.post(self.render_url, data=data, files=files)
        except httpx.TimeoutException as exc:
            raise RenderRequestFailed("Request timed out", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise RenderRequestFailed(f"Render service unreachable: {exc}", status_code=503) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("error") if isinstance(body, dict) else None
            logger.warning("Render failed with HTTP %d: %s", response.status_code, message)
            raise RenderRequestFailed(
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
                details=body.get("details") if isinstance(body, dict) else None,
            )

        try:
            return RenderResult.model_validate(body)
        except ValueError as exc:
            raise RenderRequestFailed("Malformed render response", status_code=502) from exc

    async def list_scenes(self) -> list[Scene]:
        """Fetch the scene catalog from the server that hosts the render endpoint.

        Raises:
            RenderRequestFailed: The server could not be reached or answered
                with an error status or an unreadable body.
        """
        url = httpx.URL(self.render_url).join("/api/scenes")
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise RenderRequestFailed("Request timed out", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise RenderRequestFailed(f"Render service unreachable: {exc}", status_code=503) from exc

        if response.is_error:
            logger.warning("Scene catalog failed with HTTP %d", response.status_code)
            raise RenderRequestFailed(f"HTTP {response.status_code}", status_code=response.status_code)
        try:
            return [Scene.model_validate(item) for item in response.json()]
        except (ValueError, TypeError) as exc:
            raise RenderRequestFailed("Malformed scene catalog", status_code=502) from exc
