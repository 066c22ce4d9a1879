"""Camera and capture data models."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FacingMode(str, Enum):
    """Which side of the device the camera points to."""

    front = "user"
    back = "environment"


class CameraConfig(BaseModel):
    """Parameters for one acquisition attempt. Width/height are hints."""

    facing_mode: FacingMode = FacingMode.front
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)


class CapturedPhoto(BaseModel):
    """An encoded still frame, consumed once by the submission step."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/jpeg"
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    @property
    def filename(self) -> str:
        return "selfie.png" if self.mime_type == "image/png" else "selfie.jpg"
