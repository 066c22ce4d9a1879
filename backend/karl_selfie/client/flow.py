"""Capture/selection state machine.

Drives the user-facing flow

    permission -> camera -> selecting_scene -> processing -> result

with ``error`` reachable from camera setup, capture and processing. Every
user action is an event checked against ``TRANSITIONS``; combinations not in
the table raise ``InvalidTransition`` so the flow does not depend on a UI
disabling its buttons. At most one capture or submission runs at a time;
triggers arriving while one is in flight are ignored.
"""
import asyncio
import base64
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from karl_selfie.client.camera import CameraController, CameraHandle, PreviewSurface, toggle_facing
from karl_selfie.client.hints import friendly_error
from karl_selfie.client.render_client import RenderClient
from karl_selfie.core.errors import KarlSelfieError
from karl_selfie.core.logging import setup_logging
from karl_selfie.models.camera import CameraConfig, CapturedPhoto, FacingMode
from karl_selfie.models.render import RenderResult

logger = setup_logging("flow")

CAMERA_NOT_READY_MESSAGE = "Kamera noch nicht bereit. Bitte warten."
MISSING_SCENE_MESSAGE = "Bitte wähle eine Szene oder beschreibe eine eigene."
CAMERA_ERROR_PREFIX = "Kamerafehler: "
GENERIC_ERROR_MESSAGE = "Ein Fehler ist aufgetreten"


class FlowState(str, Enum):
    permission = "permission"
    camera = "camera"
    selecting_scene = "selecting_scene"
    processing = "processing"
    result = "result"
    error = "error"


class FlowEvent(str, Enum):
    grant = "grant"
    switch_device = "switch_device"
    capture = "capture"
    submit = "submit"
    succeed = "succeed"
    fail = "fail"
    retake = "retake"
    download = "download"
    retry = "retry"


TRANSITIONS: dict[tuple[FlowState, FlowEvent], frozenset[FlowState]] = {
    (FlowState.permission, FlowEvent.grant): frozenset({FlowState.camera}),
    (FlowState.camera, FlowEvent.switch_device): frozenset({FlowState.camera}),
    (FlowState.camera, FlowEvent.capture): frozenset({FlowState.selecting_scene}),
    (FlowState.camera, FlowEvent.fail): frozenset({FlowState.error}),
    (FlowState.selecting_scene, FlowEvent.submit): frozenset({FlowState.processing}),
    (FlowState.processing, FlowEvent.succeed): frozenset({FlowState.result}),
    (FlowState.processing, FlowEvent.fail): frozenset({FlowState.error}),
    (FlowState.result, FlowEvent.retake): frozenset({FlowState.camera}),
    (FlowState.result, FlowEvent.download): frozenset({FlowState.result}),
    (FlowState.error, FlowEvent.retry): frozenset({FlowState.camera, FlowState.selecting_scene}),
}


class InvalidTransition(Exception):
    """The event is not allowed in the current state."""

    def __init__(self, state: FlowState, event: FlowEvent) -> None:
        super().__init__(f"Event {event.value!r} not allowed in state {state.value!r}")
        self.state = state
        self.event = event


class CaptureFlow:
    """Selfie capture and submission flow for one user session."""

    def __init__(
        self,
        controller: CameraController,
        render_client: RenderClient,
        camera_config: Optional[CameraConfig] = None,
        ready_timeout: float = 10.0,
    ) -> None:
        self.controller = controller
        self.render_client = render_client
        self.camera_config = camera_config or CameraConfig()
        self.ready_timeout = ready_timeout

        self.state = FlowState.permission
        self.facing_mode: FacingMode = self.camera_config.facing_mode
        self.surface = PreviewSurface()
        self.handle: Optional[CameraHandle] = None
        self.has_multiple_cameras = False
        self.photo: Optional[CapturedPhoto] = None
        self.result: Optional[RenderResult] = None
        self.error_message = ""
        self.validation_message = ""
        self._busy = False
        self._camera_lock = asyncio.Lock()
        self._camera_generation = 0

    # --- state bookkeeping ---

    def can(self, event: FlowEvent) -> bool:
        return (self.state, event) in TRANSITIONS

    def _check(self, event: FlowEvent) -> None:
        if not self.can(event):
            raise InvalidTransition(self.state, event)

    def _move(self, event: FlowEvent, target: FlowState) -> None:
        allowed = TRANSITIONS.get((self.state, event), frozenset())
        if target not in allowed:
            raise InvalidTransition(self.state, event)
        logger.debug(
            "%s --%s--> %s",
            self.state.value,
            event.value,
            target.value,
            extra={"state": target.value, "event": event.value},
        )
        self.state = target

    def _fail(self, message: str) -> None:
        self.error_message = message
        self._move(FlowEvent.fail, FlowState.error)

    @property
    def mirror(self) -> bool:
        return self.facing_mode == FacingMode.front

    # --- camera lifecycle ---

    def _surface_ref(self) -> Optional[PreviewSurface]:
        return self.surface

    async def _start_camera(self) -> bool:
        """Release any open device, then acquire, bind and wait for frames.

        Camera starts are serialized. A start superseded by ``close()`` while
        it was suspended releases the device it opened and returns False
        without a transition. On failure the flow is moved to ``error`` and
        False is returned.
        """
        async with self._camera_lock:
            self._release_camera()
            generation = self._camera_generation
            handle: Optional[CameraHandle] = None
            try:
                config = self.camera_config.model_copy(update={"facing_mode": self.facing_mode})
                # Counted before opening: single-open drivers hide a held device.
                self.has_multiple_cameras = await self.controller.has_multiple_devices()
                handle = await self.controller.acquire(config)
                if generation != self._camera_generation:
                    self.controller.release(handle)
                    return False
                self.handle = handle
                await self.controller.bind(handle, self._surface_ref)
                await self.controller.await_ready(self.surface, timeout=self.ready_timeout)
            except Exception as exc:
                self.controller.release(handle)
                if generation != self._camera_generation:
                    return False
                logger.error(
                    "Camera setup failed",
                    exc_info=True,
                    extra={"component": "CaptureFlow", "error_type": type(exc).__name__},
                )
                self._release_camera()
                self._fail(f"{CAMERA_ERROR_PREFIX}{exc}")
                return False
            if generation != self._camera_generation:
                self.controller.release(handle)
                return False
            return True

    def _release_camera(self) -> None:
        self._camera_generation += 1
        self.controller.release(self.handle)
        self.handle = None
        self.surface.attach(None)

    # --- user actions ---

    async def grant(self) -> bool:
        """Camera permission granted: show the live preview."""
        self._move(FlowEvent.grant, FlowState.camera)
        return await self._start_camera()

    async def switch_device(self) -> bool:
        """Toggle front/back camera and re-acquire."""
        if self._busy:
            return False
        self._check(FlowEvent.switch_device)
        self.facing_mode = toggle_facing(self.facing_mode)
        self._move(FlowEvent.switch_device, FlowState.camera)
        return await self._start_camera()

    async def capture(self) -> bool:
        """Take the still frame and move on to scene selection.

        Returns False without a transition while another capture or
        submission is in flight, or while the preview has no frame yet.
        """
        if self._busy:
            logger.debug("Capture ignored: already in flight")
            return False
        self._check(FlowEvent.capture)
        if not self.surface.has_dimensions:
            self.validation_message = CAMERA_NOT_READY_MESSAGE
            return False

        self._busy = True
        try:
            await asyncio.to_thread(self.surface.refresh)
            photo = self.controller.capture_frame(self.surface, mirror=self.mirror)
        except Exception as exc:
            logger.error(
                "Capture failed",
                exc_info=True,
                extra={"component": "CaptureFlow", "error_type": type(exc).__name__},
            )
            self._release_camera()
            self._fail(f"{CAMERA_ERROR_PREFIX}{exc}")
            return False
        finally:
            self._busy = False

        self.photo = photo
        self.validation_message = ""
        self._release_camera()
        self._move(FlowEvent.capture, FlowState.selecting_scene)
        return True

    async def submit(self, custom_prompt: Optional[str] = None, scene_id: Optional[int] = None) -> bool:
        """Send the captured photo with a typed prompt or a catalog scene.

        Returns True when a result is available, False when the submission
        was refused, ignored or failed (see ``state``).
        """
        if self._busy:
            logger.debug("Submit ignored: already in flight")
            return False
        self._check(FlowEvent.submit)

        prompt = (custom_prompt or "").strip()
        if not prompt and scene_id is None:
            self.validation_message = MISSING_SCENE_MESSAGE
            return False
        assert self.photo is not None

        self.validation_message = ""
        self._busy = True
        self._move(FlowEvent.submit, FlowState.processing)
        try:
            result = await self.render_client.render(
                self.photo,
                custom_prompt=prompt or None,
                scene_id=None if prompt else scene_id,
            )
        except KarlSelfieError as exc:
            logger.error(
                "Render failed: %s",
                exc.message,
                extra={"component": "CaptureFlow", "error_type": type(exc).__name__},
            )
            self._fail(friendly_error(exc.message))
            return False
        except Exception as exc:
            logger.error(
                "Render failed unexpectedly",
                exc_info=True,
                extra={"component": "CaptureFlow", "error_type": type(exc).__name__},
            )
            self._fail(str(exc) or GENERIC_ERROR_MESSAGE)
            return False
        finally:
            self._busy = False

        self.result = result
        self._move(FlowEvent.succeed, FlowState.result)
        return True

    async def retake(self) -> bool:
        """Discard the result and photo and return to the live camera."""
        self._check(FlowEvent.retake)
        self.result = None
        self.photo = None
        self.error_message = ""
        self._move(FlowEvent.retake, FlowState.camera)
        return await self._start_camera()

    def download(self, directory: Path) -> Path:
        """Write the result image to ``directory``; the state does not change."""
        self._check(FlowEvent.download)
        assert self.result is not None
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"karl-selfie-{int(time.time() * 1000)}.png"
        path.write_bytes(base64.b64decode(self.result.image_base64))
        self._move(FlowEvent.download, FlowState.result)
        logger.info("Saved result to %s", path)
        return path

    async def retry(self) -> bool:
        """Leave the error screen.

        With a captured photo the user returns to scene selection; otherwise
        the camera is re-acquired.
        """
        self._check(FlowEvent.retry)
        self.error_message = ""
        if self.photo is not None:
            self._move(FlowEvent.retry, FlowState.selecting_scene)
            return True
        self._move(FlowEvent.retry, FlowState.camera)
        return await self._start_camera()

    def close(self) -> None:
        """Release the camera; safe to call in any state."""
        self._release_camera()
