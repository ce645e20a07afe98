"""Application configuration helpers for media-shelf-api.

Usage:
    from media_shelf.config import get_settings
    settings = get_settings()
    print(settings.media_root)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Strongly-typed settings loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    media_root: Path = Field(default_factory=lambda: Path(
        os.getenv("MEDIA_SHELF_MEDIA_ROOT")
        or os.getenv("MEDIA_DIR", "media")
    ))
    conversions_root: Path = Field(
        default_factory=lambda: Path(os.getenv("MEDIA_SHELF_CONVERSIONS_ROOT", ".conversions"))
    )
    thumbnails_root: Path = Field(
        default_factory=lambda: Path(os.getenv("MEDIA_SHELF_THUMBNAILS_ROOT", ".thumbnails"))
    )
    port: int = Field(default_factory=lambda: int(os.getenv("MEDIA_SHELF_PORT", os.getenv("PORT", "8080"))))
    ffmpeg_bin: str = Field(default_factory=lambda: os.getenv("MEDIA_SHELF_FFMPEG_BIN", "ffmpeg"))
    ffprobe_bin: str = Field(default_factory=lambda: os.getenv("MEDIA_SHELF_FFPROBE_BIN", "ffprobe"))
    transcode_enabled: bool = Field(
        default_factory=lambda: _parse_bool(os.getenv("MEDIA_SHELF_TRANSCODE_MKV"), default=True)
    )
    transform_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("MEDIA_SHELF_TRANSFORM_TIMEOUT_S", "600"))
    )
    transform_workers: int = Field(
        default_factory=lambda: max(1, int(os.getenv("MEDIA_SHELF_TRANSFORM_WORKERS", "2")))
    )
    transform_service_url: str | None = Field(
        default_factory=lambda: os.getenv("MEDIA_SHELF_TRANSFORM_URL") or None
    )
    thumbnail_offset: str = Field(
        default_factory=lambda: os.getenv("MEDIA_SHELF_THUMBNAIL_OFFSET", "00:00:10")
    )
    thumbnail_width: int = Field(
        default_factory=lambda: int(os.getenv("MEDIA_SHELF_THUMBNAIL_WIDTH", "320"))
    )
    initial_chunk_bytes: int = Field(
        default_factory=lambda: int(os.getenv("MEDIA_SHELF_INITIAL_CHUNK_BYTES", str(1024 * 1024)))
    )


def ensure_media_root(path: Path) -> None:
    """Ensure the media root and its two conventional folders exist."""

    path.mkdir(parents=True, exist_ok=True)
    (path / "movies").mkdir(exist_ok=True)
    (path / "tvshows").mkdir(exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings loaded from environment variables."""

    settings = Settings()
    ensure_media_root(settings.media_root)
    settings.conversions_root.mkdir(parents=True, exist_ok=True)
    settings.thumbnails_root.mkdir(parents=True, exist_ok=True)
    return settings


def reset_settings_cache() -> None:
    """Clear cached settings (useful for tests when environment changes)."""

    get_settings.cache_clear()
