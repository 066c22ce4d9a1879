"""Camera controller: acquire, bind, release and capture from a video device.

Blocking OpenCV calls run in worker threads so the capture flow stays on a
single event loop. The video backend is injectable; ``OpenCVBackend`` is the
default and tests use an in-memory backend.
"""
import asyncio
from typing import Callable, Optional, Protocol

import cv2
import numpy as np

from karl_selfie.core.errors import DeviceUnavailable, NoFrame, ReadyTimeout, SurfaceUnavailable
from karl_selfie.core.logging import setup_logging
from karl_selfie.models.camera import CameraConfig, CapturedPhoto, FacingMode

logger = setup_logging("camera")

DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
JPEG_QUALITY = 92
SURFACE_POLL_ATTEMPTS = 50
SURFACE_POLL_INTERVAL = 0.05
READY_POLL_INTERVAL = 0.05
READY_TIMEOUT = 10.0
MAX_PROBED_DEVICES = 8


class VideoDevice(Protocol):
    def read(self) -> Optional[np.ndarray]: ...

    def release(self) -> None: ...


class VideoBackend(Protocol):
    def list_devices(self) -> list[int]: ...

    def open(self, index: int, width: Optional[int], height: Optional[int]) -> VideoDevice: ...


class OpenCVDevice:
    """cv2.VideoCapture adapter."""

    def __init__(self, capture: cv2.VideoCapture) -> None:
        self._capture = capture

    def read(self) -> Optional[np.ndarray]:
        ok, frame = self._capture.read()
        return frame if ok else None

    def release(self) -> None:
        self._capture.release()


class OpenCVBackend:
    """Video backend on top of OpenCV device indices."""

    def __init__(self, max_devices: int = MAX_PROBED_DEVICES) -> None:
        self.max_devices = max_devices

    def list_devices(self) -> list[int]:
        found = []
        for index in range(self.max_devices):
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    found.append(index)
            finally:
                capture.release()
        return found

    def open(self, index: int, width: Optional[int], height: Optional[int]) -> OpenCVDevice:
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"Camera {index} could not be opened")
        # Resolution is a hint; the driver may pick the nearest supported mode.
        if width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        return OpenCVDevice(capture)


def toggle_facing(current: FacingMode) -> FacingMode:
    """Switch between front and back camera."""
    return FacingMode.back if current == FacingMode.front else FacingMode.front


class CameraHandle:
    """A live, opened video device."""

    def __init__(self, device: VideoDevice, facing_mode: FacingMode, device_index: int) -> None:
        self._device = device
        self.facing_mode = facing_mode
        self.device_index = device_index
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released

    def read_frame(self) -> Optional[np.ndarray]:
        if self._released:
            return None
        return self._device.read()

    def stop(self) -> None:
        """Release the device. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._device.release()


class PreviewSurface:
    """Display/processing target a live handle is bound to.

    Holds the most recent frame; dimensions are zero until a frame arrives.
    """

    def __init__(self) -> None:
        self.handle: Optional[CameraHandle] = None
        self.frame: Optional[np.ndarray] = None

    @property
    def width(self) -> int:
        return int(self.frame.shape[1]) if self.frame is not None else 0

    @property
    def height(self) -> int:
        return int(self.frame.shape[0]) if self.frame is not None else 0

    @property
    def has_dimensions(self) -> bool:
        return self.width > 0 and self.height > 0

    def attach(self, handle: Optional[CameraHandle]) -> None:
        self.handle = handle
        self.frame = None

    def refresh(self) -> bool:
        """Pull the next frame from the bound handle (blocking)."""
        if self.handle is None:
            return False
        frame = self.handle.read_frame()
        if frame is None or frame.size == 0:
            return False
        self.frame = frame
        return True


class CameraController:
    """Acquires and releases video devices and captures still frames."""

    def __init__(
        self,
        backend: Optional[VideoBackend] = None,
        surface_poll_attempts: int = SURFACE_POLL_ATTEMPTS,
        surface_poll_interval: float = SURFACE_POLL_INTERVAL,
        ready_poll_interval: float = READY_POLL_INTERVAL,
    ) -> None:
        self.backend: VideoBackend = backend if backend is not None else OpenCVBackend()
        self.surface_poll_attempts = surface_poll_attempts
        self.surface_poll_interval = surface_poll_interval
        self.ready_poll_interval = ready_poll_interval

    async def list_devices(self) -> list[int]:
        return await asyncio.to_thread(self.backend.list_devices)

    async def has_multiple_devices(self) -> bool:
        return len(await self.list_devices()) > 1

    async def acquire(self, config: CameraConfig) -> CameraHandle:
        """Open the device for the requested facing mode.

        Front maps to the first enumerated device, back to the last one.
        If that device cannot be opened, any available device is used
        instead, without resolution hints.

        Raises:
            DeviceUnavailable: No device could be opened.
        """
        devices = await self.list_devices()
        preferred = self._preferred_index(devices, config.facing_mode)
        width = config.width or DEFAULT_WIDTH
        height = config.height or DEFAULT_HEIGHT

        if preferred is not None:
            try:
                device = await asyncio.to_thread(self.backend.open, preferred, width, height)
                logger.info("Camera %d opened (%s)", preferred, config.facing_mode.value)
                return CameraHandle(device, config.facing_mode, preferred)
            except Exception as exc:
                logger.warning(
                    "Preferred camera not available, trying any camera: %s",
                    exc,
                    extra={"component": "CameraController", "error_type": type(exc).__name__},
                )

        for index in devices or [0]:
            try:
                device = await asyncio.to_thread(self.backend.open, index, None, None)
            except Exception as exc:
                logger.debug("Camera %d failed: %s", index, exc)
                continue
            logger.info("Fell back to camera %d", index)
            return CameraHandle(device, config.facing_mode, index)

        raise DeviceUnavailable("No camera available")

    @staticmethod
    def _preferred_index(devices: list[int], facing_mode: FacingMode) -> Optional[int]:
        if not devices:
            return None
        if facing_mode == FacingMode.front:
            return devices[0]
        return devices[-1] if len(devices) > 1 else None

    def release(self, handle: Optional[CameraHandle]) -> None:
        """Stop the device behind ``handle``. None and released handles are no-ops."""
        if handle is None:
            return
        handle.stop()

    async def bind(
        self,
        handle: CameraHandle,
        surface_ref: Callable[[], Optional[PreviewSurface]],
    ) -> PreviewSurface:
        """Attach ``handle`` to the surface returned by ``surface_ref``.

        The surface may not exist yet; it is polled a bounded number of
        times before giving up.

        Raises:
            SurfaceUnavailable: The surface never appeared.
        """
        surface = surface_ref()
        attempts = 0
        while surface is None and attempts < self.surface_poll_attempts:
            await asyncio.sleep(self.surface_poll_interval)
            attempts += 1
            surface = surface_ref()
        if surface is None:
            raise SurfaceUnavailable(self.surface_poll_attempts)

        # Drops any frame left over from a previous handle.
        surface.attach(handle)
        return surface

    async def await_ready(self, surface: PreviewSurface, timeout: float = READY_TIMEOUT) -> None:
        """Wait until the surface reports non-zero frame dimensions.

        Raises:
            ReadyTimeout: No frame within ``timeout`` seconds.
        """

        async def _poll() -> None:
            while not surface.has_dimensions:
                if not await asyncio.to_thread(surface.refresh):
                    await asyncio.sleep(self.ready_poll_interval)

        try:
            await asyncio.wait_for(_poll(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ReadyTimeout(timeout) from None
        logger.info("Video ready: %dx%d", surface.width, surface.height)

    def capture_frame(self, surface: PreviewSurface, mirror: bool = False) -> CapturedPhoto:
        """Encode the surface's current frame as JPEG at native resolution.

        Args:
            surface: Bound surface holding the current frame.
            mirror: Flip horizontally so the photo matches a mirrored preview.

        Raises:
            NoFrame: The surface has zero dimensions or encoding failed.
        """
        if not surface.has_dimensions or surface.frame is None:
            raise NoFrame()

        frame = surface.frame
        if mirror:
            frame = cv2.flip(frame, 1)
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
        if not ok:
            raise NoFrame("Failed to encode frame")

        data = buffer.tobytes()
        logger.info("Frame captured: %d bytes", len(data))
        return CapturedPhoto(data=data, width=surface.width, height=surface.height)

    async def check_access(self) -> bool:
        """Return True if any camera can be opened right now."""
        try:
            handle = await self.acquire(CameraConfig())
        except DeviceUnavailable:
            return False
        self.release(handle)
        return True
