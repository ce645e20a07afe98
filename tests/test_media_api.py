from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient


def _write(root: Path, relative: str, payload: bytes = b"media-bytes") -> Path:
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(payload)
    return target


def test_list_media_and_filter_by_category(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/My Movie.mp4")
    _write(env_settings, "tvshows/Show/Season 1/Pilot.mp4")
    _write(env_settings, "Anime/Opening.mkv")

    listing = client.get("/media")
    assert listing.status_code == 200
    items = {item["id"]: item for item in listing.json()}
    assert set(items) == {"my-movie", "show", "anime-opening"}
    show = items["show"]
    assert show["seasons"][0]["episodes"][0]["id"] == "show-season-1-pilot"
    assert show["seasons"][0]["episodes"][0]["parent"] == "show-season-1"

    movies = client.get("/media", params={"category": "movies"})
    assert movies.status_code == 200
    assert [item["id"] for item in movies.json()] == ["my-movie"]

    stream_url = movies.json()[0]["stream_url"]
    streamed = client.get(stream_url)
    assert streamed.status_code == 206
    assert streamed.content == b"media-bytes"

    assert client.get("/media", params={"category": "nothing"}).json() == []


def test_get_item_by_id(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "tvshows/Show/Season 1/Pilot.mp4")

    episode = client.get("/items/show-season-1-pilot")
    assert episode.status_code == 200
    assert episode.json()["type"] == "episode"

    missing = client.get("/items/unknown")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Media not found"}


def test_range_request_returns_exact_span(client: TestClient, env_settings: Path) -> None:
    payload = bytes(range(250)) * 4
    _write(env_settings, "movies/Clip.mp4", payload)

    response = client.get("/media/movies/Clip.mp4", headers={"Range": "bytes=0-99"})
    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 0-99/1000"
    assert response.headers["content-length"] == "100"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["content-disposition"] == "inline"
    assert response.content == payload[:100]

    tail = client.get("/media/movies/Clip.mp4", headers={"Range": "bytes=900-"})
    assert tail.status_code == 206
    assert tail.headers["content-range"] == "bytes 900-999/1000"
    assert tail.content == payload[900:]


def test_unranged_request_serves_leading_chunk(client: TestClient, env_settings: Path) -> None:
    size = 2 * 1024 * 1024
    _write(env_settings, "movies/Big Movie.mov", b"\x01" * size)

    response = client.get("/media/movies/Big%20Movie.mov")
    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 0-1048576/2097152"
    assert response.headers["content-length"] == str(1024 * 1024 + 1)
    assert len(response.content) == 1024 * 1024 + 1
    assert response.headers["content-type"] == "video/quicktime"
    assert "content-disposition" not in response.headers


def test_unsatisfiable_range(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/Clip.mp4", b"x" * 10)

    response = client.get("/media/movies/Clip.mp4", headers={"Range": "bytes=50-60"})
    assert response.status_code == 416
    assert response.headers["content-range"] == "bytes */10"
    assert response.json() == {"error": "Requested range not satisfiable"}


def test_empty_file_returns_empty_body(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/Empty.mp4", b"")

    response = client.get("/media/movies/Empty.mp4")
    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["accept-ranges"] == "bytes"


def test_missing_and_invalid_paths(client: TestClient, env_settings: Path) -> None:
    missing = client.get("/media/movies/nope.mp4")
    assert missing.status_code == 404
    assert missing.json() == {"error": "File not found"}

    directory = client.get("/media/movies/")
    assert directory.status_code == 404

    traversal = client.get("/media/movies/..%2F..%2Fsecret.txt")
    assert traversal.status_code == 400
    assert "error" in traversal.json()


def test_custom_category_paths_with_spaces(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "Music Videos/Song #1.webm", b"song")

    listing = client.get("/media", params={"category": "music-videos"}).json()
    assert listing[0]["stream_url"] == "/media/Music%20Videos/Song%20%231.webm"

    streamed = client.get(listing[0]["stream_url"])
    assert streamed.status_code == 206
    assert streamed.content == b"song"
    assert streamed.headers["content-type"] == "video/webm"


def test_matroska_falls_back_to_source_when_transcode_fails(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/Show.mkv", b"matroska")

    response = client.get("/media/movies/Show.mkv")
    assert response.status_code == 206
    assert response.headers["content-type"] == "video/x-matroska"
    assert response.content == b"matroska"


def test_info_endpoint(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/Clip.mp4", b"x" * 2048)

    response = client.get("/info/movies/Clip.mp4")
    assert response.status_code == 200
    assert response.json() == {
        "path": "/movies/Clip.mp4",
        "size": 2048,
        "size_label": "2 KB",
        "mime": "video/mp4",
        "probe": None,
    }
    assert client.get("/info/movies/Missing.mp4").status_code == 404


def test_backslash_in_filename_streams_from_catalog_url(client: TestClient, env_settings: Path) -> None:
    _write(env_settings, "movies/AC\\DC Live.mp4", b"thunderstruck")

    listing = client.get("/media", params={"category": "movies"}).json()
    assert listing[0]["stream_url"] == "/media/movies/AC%5CDC%20Live.mp4"

    streamed = client.get(listing[0]["stream_url"])
    assert streamed.status_code == 206
    assert streamed.content == b"thunderstruck"


def test_overlong_name_is_not_found(client: TestClient, env_settings: Path) -> None:
    response = client.get("/media/movies/" + "a" * 300 + ".mp4")
    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}

    info = client.get("/info/movies/" + "a" * 300 + ".mp4")
    assert info.status_code == 404


def test_unexpected_errors_render_json(env_settings: Path, monkeypatch) -> None:
    from media_shelf.api import media as media_api
    from media_shelf.main import create_app

    def explode(*_args):
        raise RuntimeError("scanner bug")

    monkeypatch.setattr(media_api, "list_all", explode)
    client = TestClient(create_app(), raise_server_exceptions=False)

    response = client.get("/media")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to stream media"}
