"""Shared test fixtures and configuration."""
from pathlib import Path

import pytest

from karl_selfie.core.config import Settings, get_settings

from fakes import REFERENCE_BYTES


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run every test in an empty directory without a real API key."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("SCENES_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()


@pytest.fixture
def reference_dir(tmp_path: Path) -> Path:
    d = tmp_path / "Referenz"
    d.mkdir()
    (d / "karl.png").write_bytes(REFERENCE_BYTES)
    return d


@pytest.fixture
def settings(tmp_path: Path, reference_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="AIza-test-key",
        api_key_file=tmp_path / "key.txt",
        reference_dir=reference_dir,
    )
