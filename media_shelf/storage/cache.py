"""Content-addressed caches for transcoded media and thumbnails.

Artifacts are keyed by the source's relative path, not its contents: a source
file replaced in place keeps resolving to the artifact derived from the old
file until the cache entry is removed by hand. Caches are never evicted.

Example:
    from media_shelf.storage.cache import get_transcode_cache
    mp4_path = get_transcode_cache().get("/movies/Film.mkv")
"""

from __future__ import annotations

import base64
import logging
import os
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict

from media_shelf.config import get_settings
from media_shelf.errors import InvalidPath, TransformFailed
from media_shelf.storage.paths import normalize_relative_path, resolve_media_path
from media_shelf.storage.transform import MediaTransformer, build_transformer


logger = logging.getLogger("media_shelf.cache")

INCOMPATIBLE_CONTAINERS = {".mkv"}
KEY_CHUNK_LENGTH = 200


@dataclass(frozen=True)
class CacheResult:
    kind: str
    status: str
    path: str | None = None
    detail: str | None = None


def cache_key(relative_path: str) -> str:
    """Reversible key for a relative path (urlsafe base64 of its canonical form)."""

    canonical = normalize_relative_path(relative_path)
    return base64.urlsafe_b64encode(canonical.encode("utf-8")).decode("ascii")


def decode_cache_key(key: str) -> str:
    return base64.urlsafe_b64decode(key.encode("ascii")).decode("utf-8")


def requires_transcode(relative_path: str) -> bool:
    return Path(relative_path).suffix.lower() in INCOMPATIBLE_CONTAINERS


def _always(_relative_path: str) -> bool:
    return True


class ContentCache:
    """On-disk cache running at most one transformation per key at a time."""

    def __init__(
        self,
        kind: str,
        cache_dir: Path,
        media_root: Path,
        transformer: MediaTransformer,
        suffix: str,
        *,
        applies_to: Callable[[str], bool] = _always,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.kind = kind
        self.cache_dir = Path(cache_dir)
        self.media_root = Path(media_root)
        self.transformer = transformer
        self.suffix = suffix
        self.applies_to = applies_to
        self._executor = executor or get_transform_executor()
        self._lock = threading.RLock()
        self._inflight: Dict[str, Future] = {}

    def artifact_path(self, relative_path: str) -> Path:
        key = cache_key(relative_path)
        chunks = [key[i : i + KEY_CHUNK_LENGTH] for i in range(0, len(key), KEY_CHUNK_LENGTH)]
        return self.cache_dir.joinpath(*chunks[:-1]) / f"{chunks[-1]}{self.suffix}"

    def lookup(self, relative_path: str) -> CacheResult:
        if not self.applies_to(relative_path):
            return CacheResult(kind=self.kind, status="skipped", detail="Not applicable")
        try:
            key = cache_key(relative_path)
            target = self.artifact_path(relative_path)
        except InvalidPath as exc:
            return CacheResult(kind=self.kind, status="error", detail=exc.message)
        if target.exists():
            return CacheResult(kind=self.kind, status="cached", path=target.as_posix())

        with self._lock:
            future = self._inflight.get(key)
            if future is None:
                if target.exists():
                    return CacheResult(kind=self.kind, status="cached", path=target.as_posix())
                future = self._executor.submit(self._produce, relative_path, target)
                self._inflight[key] = future
                future.add_done_callback(lambda _done, key=key: self._release(key))

        try:
            produced = future.result()
        except TransformFailed as exc:
            return CacheResult(kind=self.kind, status="error", detail=exc.message)
        except Exception as exc:
            logger.exception("transform_crashed", extra={"kind": self.kind, "source": relative_path})
            return CacheResult(kind=self.kind, status="error", detail=str(exc))
        return CacheResult(kind=self.kind, status="created", path=produced.as_posix())

    def get(self, relative_path: str) -> Path | None:
        """Return the artifact path, or None when not applicable or failed."""

        result = self.lookup(relative_path)
        return Path(result.path) if result.path else None

    def _release(self, key: str) -> None:
        with self._lock:
            self._inflight.pop(key, None)

    def _produce(self, relative_path: str, target: Path) -> Path:
        try:
            source = resolve_media_path(self.media_root, relative_path)
        except InvalidPath as exc:
            raise TransformFailed(exc.message) from exc
        if not source.is_file():
            raise TransformFailed("Source file not found")

        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f".{target.stem}.{uuid.uuid4().hex}.partial{self.suffix}")
        logger.info(
            "transform_started",
            extra={"kind": self.kind, "source": relative_path, "artifact": target.name},
        )
        try:
            self.transformer.transform(source, partial)
            if not partial.exists() or partial.stat().st_size == 0:
                raise TransformFailed("Transformation produced no output")
            os.replace(partial, target)
        except TransformFailed as exc:
            logger.warning(
                "transform_failed",
                extra={"kind": self.kind, "source": relative_path, "error": exc.message},
            )
            raise
        except OSError as exc:
            logger.warning(
                "transform_failed",
                extra={"kind": self.kind, "source": relative_path, "error": str(exc)},
            )
            raise TransformFailed(str(exc)) from exc
        finally:
            partial.unlink(missing_ok=True)
        logger.info("transform_completed", extra={"kind": self.kind, "source": relative_path})
        return target


@lru_cache(maxsize=1)
def get_transform_executor() -> ThreadPoolExecutor:
    """Shared pool bounding concurrent external-tool runs across all caches."""

    settings = get_settings()
    return ThreadPoolExecutor(max_workers=settings.transform_workers, thread_name_prefix="transform")


@lru_cache(maxsize=1)
def get_transcode_cache() -> ContentCache:
    settings = get_settings()
    return ContentCache(
        "transcode",
        settings.conversions_root,
        settings.media_root,
        build_transformer("transcode", settings),
        ".mp4",
        applies_to=requires_transcode,
    )


@lru_cache(maxsize=1)
def get_thumbnail_cache() -> ContentCache:
    settings = get_settings()
    return ContentCache(
        "thumbnail",
        settings.thumbnails_root,
        settings.media_root,
        build_transformer("thumbnail", settings),
        ".jpg",
    )


def reset_caches() -> None:
    """Drop cached cache instances (useful for tests when settings change)."""

    get_transcode_cache.cache_clear()
    get_thumbnail_cache.cache_clear()
    if get_transform_executor.cache_info().currsize:
        get_transform_executor().shutdown(wait=False)
    get_transform_executor.cache_clear()
