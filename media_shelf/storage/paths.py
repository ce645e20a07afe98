"""Path helpers for safe media resolution.

Example:
    from media_shelf.storage.paths import resolve_media_path
    target = resolve_media_path(Path('/srv/media'), '/movies/My%20Movie.mp4')
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List
from urllib.parse import quote, unquote

from media_shelf.errors import InvalidPath

WHITESPACE_PATTERN = re.compile(r"\s+")
MALFORMED_ESCAPE_PATTERN = re.compile(r"%(?![0-9A-Fa-f]{2})")


def slugify(name: str) -> str:
    """Lowercase a filesystem name and collapse whitespace runs to hyphens."""

    return WHITESPACE_PATTERN.sub("-", name).lower()


def build_relative_path(*segments: str) -> str:
    """Percent-encode raw name segments into a resolvable ``/a/b`` path."""

    parts = [quote(segment, safe="") for segment in segments if segment]
    return "/" + "/".join(parts)


def media_url(prefix: str, relative_path: str) -> str:
    """Return a URL under ``prefix`` for a decoded ``/a/b`` catalog path."""

    return prefix.rstrip("/") + build_relative_path(*relative_path.split("/"))


def decode_segments(relative_path: str) -> List[str]:
    """Percent-decode each segment of a relative path, validating as we go."""

    decoded: List[str] = []
    for raw in relative_path.split("/"):
        if not raw:
            continue
        if MALFORMED_ESCAPE_PATTERN.search(raw):
            raise InvalidPath("Malformed percent-encoding in media path")
        try:
            segment = unquote(raw, errors="strict")
        except UnicodeDecodeError as exc:
            raise InvalidPath("Media path is not valid UTF-8") from exc
        if segment in {".", ".."}:
            raise InvalidPath("Media path cannot traverse directories")
        if "/" in segment or "\x00" in segment:
            raise InvalidPath("Media path segment contains illegal characters")
        decoded.append(segment)
    return decoded


def normalize_relative_path(relative_path: str) -> str:
    """Return the decoded canonical ``/a/b`` form of a relative path."""

    segments = decode_segments(relative_path)
    if not segments:
        raise InvalidPath("Media path cannot be empty")
    return "/" + "/".join(segments)


def resolve_media_path(root: Path, relative_path: str) -> Path:
    """Map a logical relative path to an absolute location inside ``root``."""

    segments = decode_segments(relative_path)
    if not segments:
        raise InvalidPath("Media path cannot be empty")
    media_root = Path(root).resolve()
    target = media_root.joinpath(*segments).resolve()
    if media_root not in target.parents:
        raise InvalidPath("Requested path is outside the media root")
    return target

