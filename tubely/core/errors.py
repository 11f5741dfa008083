"""Failure taxonomy shared by the upload pipelines and the HTTP layer.

Every error carries a short client-facing ``message`` and an optional
technical ``detail`` that is logged but never returned to the caller.
"""

from __future__ import annotations

from typing import Any


class IngestError(Exception):
    status_code: int = 500
    default_message: str = "internal_error"

    def __init__(self, message: str | None = None, *, detail: Any = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class Unauthenticated(IngestError):
    status_code = 401
    default_message = "invalid_token"


class Forbidden(IngestError):
    status_code = 403
    default_message = "not_owner"


class NotFound(IngestError):
    status_code = 404
    default_message = "video_not_found"


class BadInput(IngestError):
    status_code = 400
    default_message = "bad_request"


class UploadTooLarge(BadInput):
    status_code = 413
    default_message = "upload_too_large"


class UnsupportedMedia(IngestError):
    status_code = 415
    default_message = "unsupported_media_type"


class ExternalToolFailure(IngestError):
    default_message = "media_tool_failed"


class ProbeError(ExternalToolFailure):
    default_message = "probe_failed"


class RemuxError(ExternalToolFailure):
    default_message = "remux_failed"


class StoreFailure(IngestError):
    default_message = "object_store_failed"


class MetadataFailure(IngestError):
    default_message = "metadata_store_failed"


class EntropyError(IngestError):
    default_message = "key_generation_failed"


__all__ = [
    "IngestError",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "BadInput",
    "UploadTooLarge",
    "UnsupportedMedia",
    "ExternalToolFailure",
    "ProbeError",
    "RemuxError",
    "StoreFailure",
    "MetadataFailure",
    "EntropyError",
]
