"""Error taxonomy shared by the render service, the API layer and the capture client.

Every error carries the HTTP status it maps to at the request boundary and an
optional ``details`` string that is only surfaced for server-side failures.
"""
from typing import Optional


class KarlSelfieError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


# --- Validation (user-correctable, HTTP 400) ---


class InputValidationError(KarlSelfieError):
    status_code = 400


class MissingPhoto(InputValidationError):
    def __init__(self, message: str = "No selfie image provided") -> None:
        super().__init__(message)


class MissingScene(InputValidationError):
    def __init__(self, message: str = "No scene description provided") -> None:
        super().__init__(message)


class UnknownScene(InputValidationError):
    def __init__(self, scene_index: str) -> None:
        super().__init__(f"Unknown scene: {scene_index!r}")
        self.scene_index = scene_index


class InvalidPromptInput(KarlSelfieError, ValueError):
    status_code = 400

    def __init__(self, message: str = "Scene description must not be empty") -> None:
        super().__init__(message)


# --- Configuration (operator action required) ---


class ConfigurationError(KarlSelfieError):
    status_code = 500


class MissingCredential(ConfigurationError):
    def __init__(self, message: str = "No Gemini API key found. Set GEMINI_API_KEY or create key.txt") -> None:
        super().__init__(message)


class ReferenceAssetMissing(ConfigurationError):
    def __init__(self, directory: str) -> None:
        super().__init__(f"No Karl reference image found in {directory}/ folder")
        self.directory = directory


# --- External generation service ---


class UpstreamError(KarlSelfieError):
    status_code = 500


class UpstreamRejection(UpstreamError):
    """The generation service declined the request (safety filters, account state)."""


class UpstreamTimeout(UpstreamError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Image generation timed out after {timeout_seconds:g} seconds")
        self.timeout_seconds = timeout_seconds


class EmptyGenerationResult(UpstreamError):
    def __init__(self, details: Optional[str] = None) -> None:
        super().__init__("No image data in generation response", details=details)


# --- Capture device (client side) ---


class DeviceError(KarlSelfieError):
    """Camera acquisition or capture failed."""


class DeviceUnavailable(DeviceError):
    pass


class SurfaceUnavailable(DeviceError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Preview surface not available after {attempts} attempts")
        self.attempts = attempts


class ReadyTimeout(DeviceError):
    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"Video loading timeout after {timeout_seconds:g} seconds")
        self.timeout_seconds = timeout_seconds


class NoFrame(DeviceError):
    def __init__(self, message: str = "Video has no valid dimensions") -> None:
        super().__init__(message)


# --- Render endpoint as seen by the client ---


class RenderRequestFailed(KarlSelfieError):
    """Non-2xx response from POST /api/render."""

    def __init__(self, message: str, status_code: int, details: Optional[str] = None) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
