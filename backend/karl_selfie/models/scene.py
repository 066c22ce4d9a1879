"""Scene data model."""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Scene(BaseModel):
    """One predefined scene: a short label for the picker plus the full description."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int = Field(..., ge=1)
    emoji: str
    short_title: str = Field(..., min_length=1)
    full_prompt: str = Field(..., min_length=1)
