from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from tubely.api.deps import AuthDependency
from tubely.core.config import Settings, get_settings
from tubely.media.toolcheck import tool_available

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    user_id: UUID = Field(default_factory=uuid4, examples=["6f1c2a4e-3b1d-4a44-9a55-1f0f1d6b9a10"])
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    token: str
    user_id: UUID


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(context: AuthDependency, settings: Settings = Depends(get_settings)) -> EnvCheckResponse:
    return EnvCheckResponse(
        ffmpeg=tool_available(settings.ffmpeg_binary),
        ffprobe=tool_available(settings.ffprobe_binary),
    )


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(minutes=payload.ttl_minutes)
    claims: dict[str, object] = {
        "sub": str(payload.user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    token = jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)
    return DevTokenResponse(token=token, user_id=payload.user_id)


__all__ = ["router"]
