"""Byte-range planning and bounded file reads for partial-content responses.

Example:
    byte_range = plan_range(size=1000, range_header="bytes=0-99")
    body = open_byte_range(Path("/srv/media/movies/clip.mp4"), byte_range)
    data = b"".join(body)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Dict, Iterator, Optional

from fastapi.concurrency import run_in_threadpool

from media_shelf.errors import RangeNotSatisfiable, StreamError
from media_shelf.storage.mime import plays_inline


logger = logging.getLogger("media_shelf.streamer")

INITIAL_CHUNK_BYTES = 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024
RANGE_PATTERN = re.compile(r"^\s*(?P<start>\d*)\s*-\s*(?P<end>\d*)\s*$")


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def _unsatisfiable(size: int) -> RangeNotSatisfiable:
    return RangeNotSatisfiable(headers={"Content-Range": f"bytes */{size}"})


def parse_range_header(range_header: str, size: int) -> ByteRange:
    """Parse ``bytes=<start>-<end>`` (or ``bytes=-<suffix>``) against ``size``.

    Only the first range of a multi-range header is honoured.
    """

    unit, _, spec = range_header.partition("=")
    if unit.strip().lower() != "bytes" or not spec:
        raise _unsatisfiable(size)
    match = RANGE_PATTERN.match(spec.split(",", 1)[0])
    if not match or not (match.group("start") or match.group("end")):
        raise _unsatisfiable(size)

    start_raw, end_raw = match.group("start"), match.group("end")
    if not start_raw:
        suffix = int(end_raw)
        if suffix == 0 or size == 0:
            raise _unsatisfiable(size)
        return ByteRange(start=max(size - suffix, 0), end=size - 1, size=size)

    start = int(start_raw)
    end = int(end_raw) if end_raw else size - 1
    if start >= size or end < start:
        raise _unsatisfiable(size)
    return ByteRange(start=start, end=min(end, size - 1), size=size)


def plan_range(size: int, range_header: str | None, initial_chunk: int = INITIAL_CHUNK_BYTES) -> ByteRange:
    """Pick the span to serve; unranged requests get the leading chunk as 206."""

    if range_header:
        return parse_range_header(range_header, size)
    return ByteRange(start=0, end=min(size - 1, initial_chunk), size=size)


def base_headers(mime_type: str) -> Dict[str, str]:
    headers = {
        "Accept-Ranges": "bytes",
        "Content-Type": mime_type,
        "Access-Control-Allow-Origin": "*",
        "Cache-Control": "no-cache",
        "X-Content-Type-Options": "nosniff",
    }
    if plays_inline(mime_type):
        headers["Content-Disposition"] = "inline"
    return headers


def stream_headers(mime_type: str, byte_range: ByteRange) -> Dict[str, str]:
    headers = base_headers(mime_type)
    headers["Content-Range"] = byte_range.content_range
    headers["Content-Length"] = str(byte_range.length)
    return headers


class FileRange:
    """Yields exactly ``length`` bytes of ``path`` starting at ``start``.

    The file is opened on the first read, so a response that is never
    iterated holds no handle. Exhaustion, errors and early exit all close it.
    """

    def __init__(self, path: Path, byte_range: ByteRange, chunk_size: int = READ_CHUNK_BYTES):
        self.path = path
        self.byte_range = byte_range
        self.chunk_size = chunk_size
        self.remaining = byte_range.length
        self._handle: Optional[BinaryIO] = None
        self._closed = False

    @property
    def opened(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        if self._handle is not None and not self._handle.closed:
            self._handle.close()

    def _open(self) -> BinaryIO:
        try:
            handle = self.path.open("rb")
        except OSError as exc:
            logger.error("stream_open_failed", extra={"path": self.path.as_posix(), "error": str(exc)})
            raise StreamError() from exc
        try:
            handle.seek(self.byte_range.start)
        except OSError as exc:
            handle.close()
            logger.error("stream_open_failed", extra={"path": self.path.as_posix(), "error": str(exc)})
            raise StreamError() from exc
        return handle

    def read_chunk(self) -> bytes:
        if self._closed or self.remaining <= 0:
            return b""
        if self._handle is None:
            self._handle = self._open()
        try:
            chunk = self._handle.read(min(self.chunk_size, self.remaining))
        except OSError as exc:
            logger.error("stream_read_failed", extra={"path": self.path.as_posix(), "error": str(exc)})
            raise StreamError() from exc
        if not chunk:
            # File shrank underneath us; stop rather than pad.
            self.remaining = 0
            return b""
        self.remaining -= len(chunk)
        return chunk

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.read_chunk()
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await run_in_threadpool(self.read_chunk)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()


def open_byte_range(path: Path, byte_range: ByteRange, chunk_size: int = READ_CHUNK_BYTES) -> FileRange:
    """Prepare a lazy reader for ``byte_range`` of ``path``; I/O errors surface as StreamError on read."""

    return FileRange(path, byte_range, chunk_size)
