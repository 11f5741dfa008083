"""Application factory.

Serve with ``uvicorn tubely.main:create_app --factory`` or ``tubely serve``.
There is no module-level app, so importing this module has no side effects.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tubely.api.v1 import get_api_router
from tubely.core.config import get_settings
from tubely.core.db import create_engine, create_session_factory
from tubely.core.logging import configure_logging, get_logger
from tubely.core.storage import get_storage
from tubely.media.probe import FFprobeProber
from tubely.media.remux import FFmpegRemuxer


def create_app() -> FastAPI:
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    configure_logging(level=log_level)
    logger = get_logger(component="app")
    storage = get_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.staging_dir is not None:
            settings.staging_dir.mkdir(parents=True, exist_ok=True)
        app.state.settings = settings
        app.state.storage = storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.prober = FFprobeProber(settings.ffprobe_binary, timeout=settings.tool_timeout)
        app.state.remuxer = FFmpegRemuxer(settings.ffmpeg_binary, timeout=settings.tool_timeout)
        logger.info("app_started", environment=settings.environment, storage_backend=settings.storage_backend)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    app.include_router(get_api_router())
    return app


__all__ = ["create_app"]
