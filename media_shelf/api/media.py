"""Catalog queries, range streaming and thumbnail endpoints.

Example calls:
    curl http://localhost:8080/media?category=movies
    curl -H "Range: bytes=0-99" http://localhost:8080/media/movies/Film.mp4
    curl -O http://localhost:8080/thumbnails/movies/Film.mp4
"""
from __future__ import annotations

import errno
import logging
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse
from fastapi.concurrency import run_in_threadpool

from media_shelf.config import get_settings
from media_shelf.errors import MediaIOError, NotFound, StreamError
from media_shelf.storage.cache import get_thumbnail_cache, get_transcode_cache, requires_transcode
from media_shelf.storage.catalog import find_by_id, list_all, list_by_category
from media_shelf.storage.mime import format_file_size, get_mime_type
from media_shelf.storage.paths import build_relative_path, normalize_relative_path, resolve_media_path
from media_shelf.storage.streamer import base_headers, open_byte_range, plan_range, stream_headers
from media_shelf.storage.transform import probe_media


logger = logging.getLogger("media_shelf.media")

router = APIRouter(tags=["media"])
thumbnail_router = APIRouter(prefix="/thumbnails", tags=["media"])

TRANSCODED_MIME_TYPE = "video/mp4"
THUMBNAIL_MIME_TYPE = "image/jpeg"
MISSING_ERRNOS = {errno.ENAMETOOLONG}


def _relative_path(category: str, relative_path: str) -> str:
    return build_relative_path(category, *relative_path.split("/"))


def _require_media_file(relative_path: str) -> Path:
    target = resolve_media_path(get_settings().media_root, relative_path)
    try:
        found = target.is_file()
    except OSError as exc:
        if exc.errno not in MISSING_ERRNOS:
            logger.error("media_lookup_failed", extra={"path": relative_path, "error": str(exc)})
            raise MediaIOError() from exc
        found = False
    if not found:
        logger.warning("media_not_found", extra={"path": relative_path})
        raise NotFound("File not found")
    return target


def _range_response(path: Path, mime_type: str, range_header: str | None) -> Response:
    try:
        size = path.stat().st_size
    except OSError as exc:
        logger.error("stream_stat_failed", extra={"path": path.as_posix(), "error": str(exc)})
        raise StreamError() from exc
    if size == 0 and not range_header:
        return Response(content=b"", status_code=200, headers=base_headers(mime_type))

    byte_range = plan_range(size, range_header, get_settings().initial_chunk_bytes)
    body = open_byte_range(path, byte_range)
    return StreamingResponse(body, status_code=206, headers=stream_headers(mime_type, byte_range))


@router.get("/media")
async def list_media(category: str | None = None):
    """List the whole catalog, or only the items of one category."""

    root = get_settings().media_root
    if category:
        items = await run_in_threadpool(list_by_category, root, category)
    else:
        items = await run_in_threadpool(list_all, root)
    return [item.to_dict() for item in items]


@router.get("/items/{item_id}")
async def get_media_item(item_id: str):
    """Look up one catalog item (including episodes) by id."""

    item = await run_in_threadpool(find_by_id, get_settings().media_root, item_id)
    return item.to_dict()


@router.get("/info/{category}/{relative_path:path}")
async def media_info(category: str, relative_path: str):
    """Describe a media file: size, MIME type and ffprobe output when available.

    Example:
        curl http://localhost:8080/info/movies/Film.mkv
    """

    settings = get_settings()
    rel_path = _relative_path(category, relative_path)
    source = _require_media_file(rel_path)
    try:
        size = source.stat().st_size
    except OSError as exc:
        logger.error("media_stat_failed", extra={"path": rel_path, "error": str(exc)})
        raise MediaIOError() from exc
    probe = await run_in_threadpool(probe_media, source, settings.ffprobe_bin)
    return {
        "path": normalize_relative_path(rel_path),
        "size": size,
        "size_label": format_file_size(size),
        "mime": get_mime_type(source),
        "probe": probe,
    }


@router.get("/media/{category}/{relative_path:path}")
async def stream_media(category: str, relative_path: str, request: Request):
    """Stream a media file with byte-range support.

    Matroska sources are re-muxed to MP4 on first request when transcoding is
    enabled; if that fails the original file is streamed instead.
    """

    settings = get_settings()
    rel_path = _relative_path(category, relative_path)
    source = _require_media_file(rel_path)
    target, mime_type = source, get_mime_type(source)

    if settings.transcode_enabled and requires_transcode(source.name):
        converted = await run_in_threadpool(get_transcode_cache().get, rel_path)
        if converted is not None:
            target, mime_type = converted, TRANSCODED_MIME_TYPE
        else:
            logger.info("transcode_fallback", extra={"path": rel_path})

    range_header = request.headers.get("range")
    logger.info(
        "stream_media",
        extra={"path": rel_path, "range": range_header, "transcoded": target != source},
    )
    return _range_response(target, mime_type, range_header)


@thumbnail_router.get("/{category}/{relative_path:path}")
async def stream_thumbnail(category: str, relative_path: str, request: Request):
    """Serve the cached still image for a media file, generating it on demand."""

    rel_path = _relative_path(category, relative_path)
    source = _require_media_file(rel_path)
    range_header = request.headers.get("range")

    thumbnail = await run_in_threadpool(get_thumbnail_cache().get, rel_path)
    if thumbnail is not None:
        return _range_response(thumbnail, THUMBNAIL_MIME_TYPE, range_header)

    source_mime = get_mime_type(source)
    if source_mime.startswith("image/"):
        return _range_response(source, source_mime, range_header)
    raise NotFound("Thumbnail not available")
