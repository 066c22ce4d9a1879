"""Render request/response models."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RenderRequest(BaseModel):
    """A validated selfie plus the resolved scene text.

    Produced by RenderService.build_request(); never holds an empty prompt.
    """

    photo: bytes = Field(..., min_length=1)
    prompt_text: str

    @field_validator("prompt_text")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt_text must not be blank")
        return value


class RenderResult(BaseModel):
    """Response body of POST /api/render.

    prompt_used is the raw scene text; full_prompt is the expanded
    instruction actually sent to the model (kept for diagnostics).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_base64: str = Field(..., min_length=1)
    prompt_used: str
    full_prompt: str


class ErrorResponse(BaseModel):
    """Error body returned for 4xx/5xx responses."""

    error: str
    details: Optional[str] = None


class InlineImage(BaseModel):
    """An image passed inline to the generation model."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str
