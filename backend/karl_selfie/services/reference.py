"""Karl reference image lookup."""
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from karl_selfie.core.errors import ReferenceAssetMissing
from karl_selfie.models.render import InlineImage

logger = logging.getLogger(__name__)

CANDIDATE_FILENAMES: tuple[str, ...] = (
    "karl.png",
    "karl.jpg",
    "karl1.jpg",
    "karl1.png",
    "karl2.jpg",
    "karl3.jpg",
)

MIME_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}
DEFAULT_MIME_TYPE = "image/jpeg"


class ReferenceAsset(BaseModel):
    """The reference image loaded for a single request."""

    model_config = ConfigDict(frozen=True)

    path: Path
    mime_type: str
    data: bytes

    def as_inline(self) -> InlineImage:
        return InlineImage(data=self.data, mime_type=self.mime_type)


def mime_type_for(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), DEFAULT_MIME_TYPE)


def find_reference_image(directory: Path) -> Path:
    """Locate the reference image in ``directory``.

    Candidate names are tried in priority order; otherwise the first image
    file by name wins so the choice is stable across runs.

    Raises:
        ReferenceAssetMissing: No candidate and no image file in the directory.
    """
    for name in CANDIDATE_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        logger.error("Error reading reference directory %s: %s", directory, exc)
        raise ReferenceAssetMissing(str(directory)) from exc

    for entry in entries:
        if entry.is_file() and entry.suffix.lower() in MIME_TYPES:
            return entry

    raise ReferenceAssetMissing(str(directory))


def load_reference_asset(directory: Path) -> ReferenceAsset:
    """Resolve and read the reference image. Read fresh on every call."""
    path = find_reference_image(directory)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ReferenceAssetMissing(str(directory)) from exc
    return ReferenceAsset(path=path, mime_type=mime_type_for(path), data=data)
