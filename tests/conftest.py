from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from media_shelf import config
from media_shelf.storage import cache


@pytest.fixture()
def env_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "media"
    monkeypatch.setenv("MEDIA_SHELF_MEDIA_ROOT", str(root))
    monkeypatch.setenv("MEDIA_SHELF_CONVERSIONS_ROOT", str(tmp_path / "conversions"))
    monkeypatch.setenv("MEDIA_SHELF_THUMBNAILS_ROOT", str(tmp_path / "thumbnails"))
    monkeypatch.setenv("MEDIA_SHELF_FFMPEG_BIN", "ffmpeg-missing-for-tests")
    monkeypatch.setenv("MEDIA_SHELF_FFPROBE_BIN", "ffprobe-missing-for-tests")
    monkeypatch.delenv("MEDIA_SHELF_TRANSFORM_URL", raising=False)
    config.reset_settings_cache()
    cache.reset_caches()
    config.get_settings()
    yield root
    cache.reset_caches()
    config.reset_settings_cache()


@pytest.fixture()
def client(env_settings: Path) -> TestClient:
    module = importlib.import_module("media_shelf.main")
    importlib.reload(module)
    application = module.create_app()
    return TestClient(application)

