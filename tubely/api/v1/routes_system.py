from __future__ import annotations

from fastapi import APIRouter, Depends

from tubely.api.deps import get_app_settings
from tubely.core.config import Settings

from .schemas import HealthResponse


router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.version, storage_backend=settings.storage_backend)


__all__ = ["router"]
