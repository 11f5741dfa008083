from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: str
    storage_backend: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Boots at the beach"})
    description: Optional[str] = Field(default=None, json_schema_extra={"example": "Sunset walk"})


class VideoResponse(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    description: Optional[str]
    video_url: Optional[str] = Field(default=None, description="Signed, time-limited URL for the video file.")
    thumbnail_url: Optional[str] = Field(default=None, description="Signed, time-limited URL for the thumbnail.")
    created_at: datetime
    updated_at: datetime


class VideoListResponse(BaseModel):
    videos: List[VideoResponse]


class UploadResponse(BaseModel):
    url: str = Field(..., description="Signed, time-limited URL for the uploaded video.")


class ErrorResponse(BaseModel):
    detail: str


__all__ = [
    "HealthResponse",
    "EnvCheckResponse",
    "VideoCreateRequest",
    "VideoResponse",
    "VideoListResponse",
    "UploadResponse",
    "ErrorResponse",
]
