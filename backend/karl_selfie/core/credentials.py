"""Gemini API key resolution."""
import logging
from pathlib import Path
from typing import Optional

from karl_selfie.core.config import Settings
from karl_selfie.core.errors import MissingCredential

logger = logging.getLogger(__name__)


def read_key_file(path: Path, prefix: str) -> Optional[str]:
    """Pick the API key out of a local key file.

    The file usually holds a label line and the key itself. The first
    non-blank line starting with ``prefix`` wins; otherwise the second
    non-blank line, otherwise the first.

    Returns:
        The key, or None when the file is missing or has no usable line.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        return None

    lines = [line.strip() for line in content.splitlines() if line.strip()]
    if not lines:
        return None
    for line in lines:
        if line.startswith(prefix):
            return line
    if len(lines) >= 2:
        return lines[1]
    return lines[0]


def resolve_api_key(settings: Settings) -> str:
    """Return the generation API key from the environment or the key file.

    Raises:
        MissingCredential: Neither source yields a key.
    """
    if settings.gemini_api_key.strip():
        return settings.gemini_api_key.strip()

    key = read_key_file(settings.api_key_file, settings.api_key_prefix)
    if key:
        logger.debug("Using API key from %s", settings.api_key_file)
        return key

    raise MissingCredential()
