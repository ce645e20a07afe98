"""Entry point for media-shelf-api FastAPI application.

Usage:
    uvicorn media_shelf.main:app --host 0.0.0.0 --port 8080
    python -m media_shelf.main
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from media_shelf.api.media import router as media_router
from media_shelf.api.media import thumbnail_router
from media_shelf.config import get_settings
from media_shelf.errors import MediaError, StreamError


logger = logging.getLogger("media_shelf.main")


def _configure_logging() -> None:
    """Initialize structured logging once for the service."""

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("media_shelf").setLevel(logging.INFO)


async def _media_error_handler(request: Request, exc: MediaError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"url": str(request.url), "error": exc.message})
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=exc.headers)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_crashed", extra={"url": str(request.url)}, exc_info=exc)
    return JSONResponse({"error": StreamError.default_message}, status_code=500)


def create_app() -> FastAPI:
    """Create a new FastAPI instance with registered routers."""

    _configure_logging()
    application = FastAPI(title="media-shelf-api", version="0.1.0")
    application.add_exception_handler(MediaError, _media_error_handler)
    application.add_exception_handler(Exception, _unhandled_error_handler)
    application.include_router(media_router)
    application.include_router(thumbnail_router)

    @application.get("/health")
    async def healthcheck():
        settings = get_settings()
        return {
            "ok": True,
            "service": "media-shelf-api",
            "media_root": str(settings.media_root),
        }

    return application


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("media_shelf.main:app", host="0.0.0.0", port=settings.port, reload=False)
