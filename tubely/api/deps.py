from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tubely.core.auth import AuthContext, TokenValidator, get_auth_context, get_bearer_token
from tubely.core.config import Settings, get_settings
from tubely.core.errors import IngestError
from tubely.core.logging import get_logger
from tubely.core.storage import ObjectStore
from tubely.services.ingest_service import IngestService
from tubely.services.video_repository import VideoRepository

logger = get_logger(component="api")


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> ObjectStore:
    storage: ObjectStore = request.app.state.storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


async def get_ingest_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
    storage: ObjectStore = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> AsyncIterator[IngestService]:
    service = IngestService(
        settings,
        storage,
        VideoRepository(session),
        TokenValidator(settings),
        prober=request.app.state.prober,
        remuxer=request.app.state.remuxer,
    )
    yield service


def raise_http(exc: IngestError) -> NoReturn:
    """Translate a pipeline failure into an HTTP error, logging the technical detail."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("request_failed", error=type(exc).__name__, message=exc.message, detail=exc.detail, status_code=exc.status_code)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    raise HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers) from exc


IngestServiceDependency = Annotated[IngestService, Depends(get_ingest_service)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
BearerToken = Annotated[str, Depends(get_bearer_token)]
StorageDependency = Annotated[ObjectStore, Depends(get_storage)]


__all__ = [
    "get_session",
    "get_storage",
    "get_app_settings",
    "get_ingest_service",
    "raise_http",
    "IngestServiceDependency",
    "AuthDependency",
    "BearerToken",
    "StorageDependency",
]
