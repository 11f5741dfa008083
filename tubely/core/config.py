from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Secrets(BaseSettings):
    """Secrets configuration, loaded from the environment or a secrets management service."""

    model_config = SettingsConfigDict(
        env_prefix="TUBELY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    jwt_secret: str = Field(default="change-me", description="Signing secret for bearer tokens and signed object URLs.")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Secrets":
        return cls()


class Settings(BaseSettings):
    """Centralised runtime configuration for the Tubely API."""

    model_config = SettingsConfigDict(
        env_prefix="TUBELY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Tubely API"
    environment: str = Field(default="development", description="Deployment environment label.")
    version: str = Field(default="0.1.0", description="API version for metadata and OpenAPI.")
    log_level: str = Field(default="info")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tubely.db",
        description="SQLAlchemy compatible DSN.",
    )

    storage_backend: Literal["local", "s3", "memory"] = Field(default="local", description="Active object store implementation.")
    local_storage_base_path: Path = Field(
        default_factory=lambda: Path("assets"),
        description="Root directory for the local object store.",
    )
    s3_bucket: str = Field(default="tubely-videos", description="Bucket that receives uploaded videos and thumbnails.")
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = Field(default=None, description="Override for S3-compatible services.")
    presign_ttl_seconds: int = Field(default=15 * 60, ge=1, description="Lifetime of signed retrieval URLs.")
    public_base_url: str = Field(
        default="http://localhost:8091",
        description="Externally visible base URL used for locally signed object URLs.",
    )

    staging_dir: Path | None = Field(
        default=None,
        description="Directory for staged uploads (defaults to the system temp dir).",
    )
    max_upload_size_bytes: int = Field(default=1 << 30, description="Hard limit for video uploads.")
    max_thumbnail_size_bytes: int = Field(default=10 << 20, description="Hard limit for thumbnail uploads.")

    ffprobe_binary: str = Field(default="ffprobe")
    ffmpeg_binary: str = Field(default="ffmpeg")
    media_tool_timeout_s: float | None = Field(
        default=600.0,
        description="Upper bound on a single ffprobe/ffmpeg run; 0 disables the limit.",
    )

    jwt_algorithm: str = Field(default="HS256", description="Algorithm used for JWT tokens.")
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None

    secrets: Secrets = Field(default_factory=Secrets, description="Holds sensitive configuration.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()

    @property
    def tool_timeout(self) -> float | None:
        if not self.media_tool_timeout_s:
            return None
        return self.media_tool_timeout_s


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "TUBELY_ENV": "TUBELY_ENVIRONMENT",
        "TUBELY_DB_URL": "TUBELY_DATABASE_URL",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    # In a real deployment secrets would come from a vault rather than the environment.
    secrets = Secrets.from_settings(settings)

    if settings.environment_lower == "production" and secrets.jwt_secret == "change-me":
        raise ValueError("Production environment must have a non-default JWT secret.")

    settings.secrets = secrets
    return settings


__all__ = ["Settings", "Secrets", "get_settings"]
