"""Error taxonomy shared by the catalog, cache and streaming layers.

Every error carries the HTTP status and the client-facing message that the
request boundary renders as ``{"error": message}``.
"""

from __future__ import annotations

from typing import Dict


class MediaError(Exception):
    """Base class for errors mapped to a structured JSON response."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None, *, headers: Dict[str, str] | None = None):
        self.message = message or self.default_message
        self.headers = headers or {}
        super().__init__(self.message)


class NotFound(MediaError):
    status_code = 404
    default_message = "Not found"


class InvalidPath(MediaError):
    status_code = 400
    default_message = "Invalid media path"


class MediaIOError(MediaError):
    status_code = 500
    default_message = "Failed to access media"


class StreamError(MediaError):
    status_code = 500
    default_message = "Failed to stream media"


class RangeNotSatisfiable(MediaError):
    status_code = 416
    default_message = "Requested range not satisfiable"


class TransformFailed(MediaError):
    """Raised by transformers; caches report it as a miss instead of raising."""

    status_code = 500
    default_message = "Media transformation failed"
