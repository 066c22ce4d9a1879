"""Configuration management using pydantic-settings."""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Image generation credentials. Falls back to api_key_file when empty.
    gemini_api_key: str = ""
    api_key_file: Path = Path("key.txt")
    api_key_prefix: str = "AIza"

    # Static inputs
    reference_dir: Path = Path("Referenz")
    scenes_file: Optional[Path] = None

    # Generation parameters
    image_model: str = "gemini-3-pro-image-preview"
    image_aspect_ratio: str = "2:3"
    image_size: str = "2K"
    generation_timeout_seconds: float = Field(default=60.0, gt=0)

    # Application settings
    app_name: str = "karl-selfie"

    # Server settings
    backend_host: str = "localhost"
    backend_port: int = 8000
    frontend_port: int = 3000

    # Capture client settings
    camera_width: int = 1920
    camera_height: int = 1080
    camera_ready_timeout_seconds: float = Field(default=10.0, gt=0)
    render_url: str = "http://localhost:8000/api/render"
    client_timeout_seconds: float = Field(default=90.0, gt=0)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
