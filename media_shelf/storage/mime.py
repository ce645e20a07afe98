"""Extension to MIME type mapping and human readable sizes."""

from __future__ import annotations

from pathlib import Path

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
    ".ogv": "video/ogg",
    ".mp3": "audio/mpeg",
    ".aac": "audio/aac",
    ".flac": "audio/flac",
    ".wav": "audio/wav",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def get_mime_type(path: str | Path) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def plays_inline(mime_type: str) -> bool:
    """iOS players need ``Content-Disposition: inline`` for mp4 and audio."""

    return "mp4" in mime_type or "audio" in mime_type


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1
    return f"{round(value, 2):g} {SIZE_UNITS[exponent]}"
