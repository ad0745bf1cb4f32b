"""FastAPI application exposing the realtime bridge and local media."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .config import get_settings
from .database import init_db
from .routers import realtime_router

logger = logging.getLogger(__name__)

settings = get_settings()
APP_NAME = settings.app_name
API_VERSION = settings.api_version

app = FastAPI(title=APP_NAME, version=API_VERSION)

app.include_router(realtime_router)


def _mount_static(directory: Path, route: str, name: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    app.mount(route, StaticFiles(directory=str(directory), check_dir=False), name=name)


@app.on_event("startup")
async def _startup() -> None:
    """Ensure the sync tables exist before serving."""

    try:
        init_db()
    except Exception:
        logger.exception("Database initialisation failed")
        raise
    logger.info("%s %s ready (object store: %s)", APP_NAME, API_VERSION, settings.object_store_backend)


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    return {"service": APP_NAME, "version": API_VERSION}


if settings.object_store_backend == "local" and settings.media_base_url.startswith("/"):
    _mount_static(settings.media_root, settings.media_base_url.rstrip("/") or "/media", "media")
