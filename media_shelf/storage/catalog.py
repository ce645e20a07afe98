"""Filesystem catalog derived from the media root's directory conventions.

Layout:
    root/movies/*.{ext}
    root/tvshows/{show}/{*season*}/*.{ext}
    root/{category}/*.{ext}

The catalog is never persisted; every query re-scans the tree.

Example:
    from media_shelf.storage.catalog import list_by_category
    items = list_by_category(Path("/srv/media"), "movies")
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from media_shelf.errors import MediaIOError, NotFound
from media_shelf.storage.paths import media_url, slugify


logger = logging.getLogger("media_shelf.catalog")

MOVIES_DIR = "movies"
TVSHOWS_DIR = "tvshows"
RESERVED_DIRS = {MOVIES_DIR, TVSHOWS_DIR}
VIDEO_EXTENSIONS = {".mp4", ".mkv", ".avi", ".mov", ".webm", ".m4v"}


class MediaType(str, Enum):
    MOVIE = "movie"
    TVSHOW = "tvshow"
    EPISODE = "episode"
    CUSTOM = "custom"


class MediaItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    path: str
    type: MediaType
    category: str
    parent: Optional[str] = None
    seasons: Optional[List["Season"]] = None
    stream_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return self.model_dump(mode="json", exclude_none=True)


class Season(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    parent: str
    episodes: List[MediaItem] = Field(default_factory=list)


MediaItem.model_rebuild()


class _IdRegistry:
    """Hands out catalog-unique ids, suffixing collisions deterministically."""

    def __init__(self) -> None:
        self._taken: set[str] = set()

    def claim(self, base: str, extension: str = "") -> str:
        candidates = [base]
        if extension:
            candidates.append(f"{base}-{extension.lstrip('.').lower()}")
        for candidate in candidates:
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate
        counter = 2
        while f"{candidates[-1]}-{counter}" in self._taken:
            counter += 1
        claimed = f"{candidates[-1]}-{counter}"
        self._taken.add(claimed)
        return claimed


def is_video_file(path: Path) -> bool:
    return path.suffix.lower() in VIDEO_EXTENSIONS


def _sorted_entries(directory: Path) -> List[Path]:
    return sorted(directory.iterdir(), key=lambda entry: entry.name)


def _video_files(directory: Path) -> Iterator[Path]:
    for entry in _sorted_entries(directory):
        if entry.is_file() and is_video_file(entry):
            yield entry


def _leaf_item(
    *,
    item_id: str,
    file_path: Path,
    relative_path: str,
    media_type: MediaType,
    category: str,
    parent: str | None = None,
) -> MediaItem:
    return MediaItem(
        id=item_id,
        title=file_path.stem,
        path=relative_path,
        type=media_type,
        category=category,
        parent=parent,
        stream_url=media_url("/media", relative_path),
        thumbnail_url=media_url("/thumbnails", relative_path),
    )


def _ensure_branch(directory: Path) -> bool:
    """Create a missing convention folder; return False when it was just created."""

    if directory.is_dir():
        return True
    directory.mkdir(parents=True, exist_ok=True)
    return False


def scan_movies(root: Path, ids: _IdRegistry | None = None) -> List[MediaItem]:
    ids = ids or _IdRegistry()
    movies_dir = root / MOVIES_DIR
    if not _ensure_branch(movies_dir):
        return []
    try:
        files = list(_video_files(movies_dir))
    except OSError as exc:
        logger.warning(
            "catalog_branch_skipped",
            extra={"path": movies_dir.as_posix(), "error": str(exc)},
        )
        return []
    items: List[MediaItem] = []
    for file_path in files:
        items.append(
            _leaf_item(
                item_id=ids.claim(slugify(file_path.stem), file_path.suffix),
                file_path=file_path,
                relative_path=f"/{MOVIES_DIR}/{file_path.name}",
                media_type=MediaType.MOVIE,
                category=MOVIES_DIR,
            )
        )
    return items


def _scan_season(show_dir: Path, season_dir: Path, season_id: str, ids: _IdRegistry) -> List[MediaItem]:
    episodes: List[MediaItem] = []
    for file_path in _video_files(season_dir):
        episodes.append(
            _leaf_item(
                item_id=ids.claim(f"{season_id}-{slugify(file_path.stem)}", file_path.suffix),
                file_path=file_path,
                relative_path=f"/{TVSHOWS_DIR}/{show_dir.name}/{season_dir.name}/{file_path.name}",
                media_type=MediaType.EPISODE,
                category=TVSHOWS_DIR,
                parent=season_id,
            )
        )
    return episodes


def _scan_show(show_dir: Path, ids: _IdRegistry) -> MediaItem:
    show_id = ids.claim(slugify(show_dir.name))
    seasons: List[Season] = []
    for season_dir in _sorted_entries(show_dir):
        if not season_dir.is_dir() or "season" not in season_dir.name.lower():
            continue
        season_id = ids.claim(f"{show_id}-{slugify(season_dir.name)}")
        try:
            episodes = _scan_season(show_dir, season_dir, season_id, ids)
        except OSError as exc:
            logger.warning(
                "catalog_branch_skipped",
                extra={"path": season_dir.as_posix(), "error": str(exc)},
            )
            episodes = []
        seasons.append(Season(id=season_id, title=season_dir.name, parent=show_id, episodes=episodes))
    return MediaItem(
        id=show_id,
        title=show_dir.name,
        path=f"/{TVSHOWS_DIR}/{show_dir.name}",
        type=MediaType.TVSHOW,
        category=TVSHOWS_DIR,
        seasons=seasons,
    )


def scan_tvshows(root: Path, ids: _IdRegistry | None = None) -> List[MediaItem]:
    ids = ids or _IdRegistry()
    shows_dir = root / TVSHOWS_DIR
    if not _ensure_branch(shows_dir):
        return []
    try:
        show_dirs = _sorted_entries(shows_dir)
    except OSError as exc:
        logger.warning(
            "catalog_branch_skipped",
            extra={"path": shows_dir.as_posix(), "error": str(exc)},
        )
        return []
    shows: List[MediaItem] = []
    for show_dir in show_dirs:
        if not show_dir.is_dir():
            continue
        try:
            shows.append(_scan_show(show_dir, ids))
        except OSError as exc:
            logger.warning(
                "catalog_branch_skipped",
                extra={"path": show_dir.as_posix(), "error": str(exc)},
            )
    return shows


def scan_custom(root: Path, ids: _IdRegistry | None = None) -> List[MediaItem]:
    ids = ids or _IdRegistry()
    items: List[MediaItem] = []
    for category_dir in _sorted_entries(root):
        name = category_dir.name
        if not category_dir.is_dir() or name.lower() in RESERVED_DIRS or name.startswith("."):
            continue
        category_id = slugify(name)
        try:
            files = list(_video_files(category_dir))
        except OSError as exc:
            logger.warning(
                "catalog_branch_skipped",
                extra={"path": category_dir.as_posix(), "error": str(exc)},
            )
            continue
        for file_path in files:
            items.append(
                _leaf_item(
                    item_id=ids.claim(f"{category_id}-{slugify(file_path.stem)}", file_path.suffix),
                    file_path=file_path,
                    relative_path=f"/{name}/{file_path.name}",
                    media_type=MediaType.CUSTOM,
                    category=category_id,
                )
            )
    return items


def scan_library(root: Path) -> List[MediaItem]:
    """Scan every convention under ``root`` into a flat list of catalog items."""

    root = Path(root)
    try:
        root.mkdir(parents=True, exist_ok=True)
        ids = _IdRegistry()
        items = scan_movies(root, ids)
        items.extend(scan_tvshows(root, ids))
        items.extend(scan_custom(root, ids))
    except OSError as exc:
        logger.error("catalog_scan_failed", extra={"root": root.as_posix(), "error": str(exc)})
        raise MediaIOError("Failed to fetch media") from exc
    return items


def list_all(root: Path) -> List[MediaItem]:
    return scan_library(root)


def list_by_category(root: Path, category: str) -> List[MediaItem]:
    return [item for item in scan_library(root) if item.category == category]


def iter_episodes(show: MediaItem) -> Iterator[MediaItem]:
    for season in show.seasons or []:
        yield from season.episodes


def find_by_id(root: Path, item_id: str) -> MediaItem:
    """Find an item by id, looking at flat items before descending into shows."""

    items = scan_library(root)
    for item in items:
        if item.id == item_id:
            return item
    for show in items:
        if show.type is not MediaType.TVSHOW:
            continue
        for episode in iter_episodes(show):
            if episode.id == item_id:
                return episode
    raise NotFound("Media not found")
