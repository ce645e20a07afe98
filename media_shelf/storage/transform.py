"""Media transformers backing the content caches (re-mux, thumbnails, probes).

Example:
    from media_shelf.storage.transform import RemuxTransformer
    RemuxTransformer().transform(Path("/srv/media/movies/film.mkv"), Path("/tmp/film.mp4"))
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import List

import httpx

from media_shelf.config import Settings
from media_shelf.errors import TransformFailed


logger = logging.getLogger("media_shelf.transform")

DEFAULT_TIMEOUT_S = 600.0


def tool_available(binary: str) -> bool:
    return shutil.which(binary) is not None


def _run_tool(cmd: List[str], timeout_s: float) -> subprocess.CompletedProcess:
    if not tool_available(cmd[0]):
        raise TransformFailed(f"{cmd[0]} not available")
    try:
        return subprocess.run(cmd, check=True, capture_output=True, timeout=timeout_s)
    except subprocess.TimeoutExpired as exc:
        raise TransformFailed(f"{cmd[0]} timed out after {timeout_s:g}s") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
        raise TransformFailed(f"{cmd[0]} exited with {exc.returncode}: {stderr[-500:]}") from exc
    except OSError as exc:
        raise TransformFailed(str(exc)) from exc


class MediaTransformer:
    """Turns one source file into one derived artifact at ``destination``."""

    kind = "transform"

    def transform(self, source: Path, destination: Path) -> None:
        raise NotImplementedError


class FFmpegTransformer(MediaTransformer):
    def __init__(self, ffmpeg_bin: str = "ffmpeg", timeout_s: float = DEFAULT_TIMEOUT_S):
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout_s = timeout_s

    def command(self, source: Path, destination: Path) -> List[str]:
        raise NotImplementedError

    def transform(self, source: Path, destination: Path) -> None:
        _run_tool(self.command(source, destination), self.timeout_s)


class RemuxTransformer(FFmpegTransformer):
    """Copy the video stream untouched and re-encode audio to AAC."""

    kind = "transcode"

    def command(self, source: Path, destination: Path) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-y",
            "-i",
            source.as_posix(),
            "-c:v",
            "copy",
            "-c:a",
            "aac",
            destination.as_posix(),
        ]


class ThumbnailTransformer(FFmpegTransformer):
    """Grab a single frame near the start, scaled to a fixed width."""

    kind = "thumbnail"

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        timeout_s: float = DEFAULT_TIMEOUT_S,
        *,
        offset: str = "00:00:10",
        width: int = 320,
    ):
        super().__init__(ffmpeg_bin, timeout_s)
        self.offset = offset
        self.width = width

    def command(self, source: Path, destination: Path) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-y",
            "-ss",
            self.offset,
            "-i",
            source.as_posix(),
            "-vframes",
            "1",
            "-vf",
            f"scale={self.width}:-1",
            destination.as_posix(),
        ]


class RemoteTransformer(MediaTransformer):
    """Delegate a transformation to an HTTP transcoding service.

    The service receives ``{"path": ..., "kind": ...}`` at ``{base_url}/{kind}``
    and answers with the artifact bytes.
    """

    def __init__(self, base_url: str, kind: str, timeout_s: float = DEFAULT_TIMEOUT_S, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.kind = kind
        self.timeout_s = timeout_s
        self._client = client

    def transform(self, source: Path, destination: Path) -> None:
        client = self._client or httpx.Client(timeout=self.timeout_s)
        try:
            with client.stream(
                "POST",
                f"{self.base_url}/{self.kind}",
                json={"path": source.as_posix(), "kind": self.kind},
            ) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
        except httpx.HTTPError as exc:
            raise TransformFailed(f"transform service error: {exc}") from exc
        finally:
            if self._client is None:
                client.close()


def build_transformer(kind: str, settings: Settings) -> MediaTransformer:
    """Return the configured backend for ``kind`` ("transcode" or "thumbnail")."""

    if settings.transform_service_url:
        return RemoteTransformer(settings.transform_service_url, kind, timeout_s=settings.transform_timeout_s)
    if kind == "transcode":
        return RemuxTransformer(settings.ffmpeg_bin, settings.transform_timeout_s)
    if kind == "thumbnail":
        return ThumbnailTransformer(
            settings.ffmpeg_bin,
            settings.transform_timeout_s,
            offset=settings.thumbnail_offset,
            width=settings.thumbnail_width,
        )
    raise ValueError(f"Unknown transformer kind: {kind}")


def probe_media(path: Path, ffprobe_bin: str = "ffprobe", timeout_s: float = 30.0) -> dict | None:
    """Return ffprobe's format/stream description, or None when unavailable."""

    if not tool_available(ffprobe_bin):
        return None
    try:
        result = subprocess.run(
            [
                ffprobe_bin,
                "-v",
                "error",
                "-show_format",
                "-show_streams",
                "-of",
                "json",
                path.as_posix(),
            ],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout_s,
        )
        return json.loads(result.stdout)
    except (subprocess.SubprocessError, OSError, ValueError) as exc:
        logger.warning("probe_failed", extra={"path": path.as_posix(), "error": str(exc)})
        return None
