from __future__ import annotations

import asyncio
import tempfile
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Protocol
from uuid import UUID

from tubely.core.auth import TokenValidator
from tubely.core.config import Settings
from tubely.core.errors import (
    BadInput,
    Forbidden,
    IngestError,
    MetadataFailure,
    UnsupportedMedia,
    UploadTooLarge,
)
from tubely.core.logging import bound_context, get_logger
from tubely.core.storage import ObjectStore, StorageReference
from tubely.db.models import Video
from tubely.media.keys import derive_key
from tubely.media.probe import MediaProber
from tubely.media.remux import Remuxer

from .video_repository import VideoRepository

SUPPORTED_VIDEO_TYPE = "video/mp4"
SUPPORTED_THUMBNAIL_TYPES = {"image/jpeg": ".jpg", "image/png": ".png"}
THUMBNAIL_PREFIX = "thumbnails"
READ_CHUNK_BYTES = 1024 * 1024
# Request bytes allowed beyond the file itself: boundaries, part headers, small fields.
FORM_OVERHEAD_BYTES = 64 * 1024


class UploadStream(Protocol):
    content_type: str | None

    async def read(self, size: int = -1) -> bytes: ...


class UploadSource(Protocol):
    """A request body that yields one file part, read lazily."""

    declared_size: int | None

    async def open(self) -> UploadStream | None: ...


def parse_media_type(raw: str | None) -> str:
    """Return the lower-cased ``type/subtype`` of a Content-Type header, ignoring parameters."""
    if raw is None or not raw.strip():
        raise BadInput("missing_media_type")
    essence = raw.split(";", 1)[0].strip().lower()
    main_type, slash, sub_type = essence.partition("/")
    if not slash or not main_type or not sub_type or "/" in sub_type or any(ch.isspace() for ch in essence):
        raise BadInput("invalid_media_type")
    return essence


def parse_video_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except (TypeError, ValueError) as exc:
        raise BadInput("invalid_video_id") from exc


class IngestService:
    """Upload pipelines for video files and thumbnails, plus signed record views."""

    def __init__(
        self,
        settings: Settings,
        storage: ObjectStore,
        repository: VideoRepository,
        validator: TokenValidator,
        prober: MediaProber,
        remuxer: Remuxer,
    ):
        self.settings = settings
        self.storage = storage
        self.repository = repository
        self.validator = validator
        self.prober = prober
        self.remuxer = remuxer
        self.logger = get_logger(component="ingest_service")

    async def ingest_video(
        self,
        *,
        video_id: str,
        token: str,
        source: UploadSource,
    ) -> str:
        """Stage, remux, classify and store an MP4 upload, returning a signed URL for it.

        Every stage is a hard gate. Staged files are removed on every exit path,
        and the record is only updated once the object store write succeeded.
        """
        video_uuid = parse_video_id(video_id)
        user_id = self.validator.validate(token)

        with bound_context(video_id=video_uuid, user_id=user_id):
            upload = await self._open_upload(source, limit=self.settings.max_upload_size_bytes)
            media_type = parse_media_type(upload.content_type)
            if media_type != SUPPORTED_VIDEO_TYPE:
                raise UnsupportedMedia("only_video_mp4_supported")

            video = await self._owned_video(video_uuid, user_id)
            self.logger.info("video_upload_started")

            with ExitStack() as cleanup:
                staged = await self._stage_upload(
                    upload,
                    cleanup,
                    limit=self.settings.max_upload_size_bytes,
                    suffix=".mp4",
                )
                processed = await asyncio.to_thread(self.remuxer.remux, staged)
                cleanup.callback(self._discard, processed)
                self._discard(staged)

                probe = await asyncio.to_thread(self.prober.probe, processed)
                classification = probe.classification
                key = derive_key(classification.value)
                reference = StorageReference(bucket=self.settings.s3_bucket, key=str(key))
                await asyncio.to_thread(self._put_file, processed, reference, media_type)

            await self._persist_reference(video, reference, field="video_url")
            url = await asyncio.to_thread(self._presign, reference)
            self.logger.info(
                "video_upload_completed",
                key=reference.key,
                aspect_ratio=classification.value,
                width=probe.width,
                height=probe.height,
            )
            return url

    async def upload_thumbnail(
        self,
        *,
        video_id: str,
        token: str,
        source: UploadSource,
    ) -> dict[str, Any]:
        video_uuid = parse_video_id(video_id)
        user_id = self.validator.validate(token)

        with bound_context(video_id=video_uuid, user_id=user_id):
            upload = await self._open_upload(source, limit=self.settings.max_thumbnail_size_bytes)
            media_type = parse_media_type(upload.content_type)
            extension = SUPPORTED_THUMBNAIL_TYPES.get(media_type)
            if extension is None:
                raise UnsupportedMedia("only_jpeg_or_png_supported")

            video = await self._owned_video(video_uuid, user_id)

            with ExitStack() as cleanup:
                staged = await self._stage_upload(
                    upload,
                    cleanup,
                    limit=self.settings.max_thumbnail_size_bytes,
                    suffix=extension,
                )
                key = derive_key(THUMBNAIL_PREFIX, extension=extension)
                reference = StorageReference(bucket=self.settings.s3_bucket, key=str(key))
                await asyncio.to_thread(self._put_file, staged, reference, media_type)

            await self._persist_reference(video, reference, field="thumbnail_url")
            self.logger.info("thumbnail_upload_completed", key=reference.key)
            return await self.sign_video(await self.repository.reload(video))

    async def create_video(self, *, user_id: UUID, title: str, description: str | None) -> dict[str, Any]:
        video = await self.repository.create(user_id=user_id, title=title, description=description)
        self.logger.info("video_created", video_id=str(video.id), user_id=str(user_id))
        return await self.sign_video(video)

    async def get_video(self, *, video_id: str, user_id: UUID) -> dict[str, Any]:
        video = await self._owned_video(parse_video_id(video_id), user_id)
        return await self.sign_video(video)

    async def list_videos(self, *, user_id: UUID) -> list[dict[str, Any]]:
        videos = await self.repository.list_for_user(user_id)
        return [await self.sign_video(video) for video in videos]

    async def sign_video(self, video: Video) -> dict[str, Any]:
        """Snapshot a record with its storage references swapped for signed URLs."""
        return {
            "id": video.id,
            "user_id": video.user_id,
            "title": video.title,
            "description": video.description,
            "video_url": await self._signed(video.video_url),
            "thumbnail_url": await self._signed(video.thumbnail_url),
            "created_at": video.created_at,
            "updated_at": video.updated_at,
        }

    async def _signed(self, stored: str | None) -> str | None:
        if not stored:
            return None
        try:
            reference = StorageReference.parse(stored)
        except ValueError as exc:
            raise MetadataFailure("invalid_storage_reference", detail=stored) from exc
        return await asyncio.to_thread(self._presign, reference)

    async def _owned_video(self, video_id: UUID, user_id: UUID) -> Video:
        video = await self.repository.get(video_id)
        if video.user_id != user_id:
            raise Forbidden()
        return video

    async def _open_upload(self, source: UploadSource, *, limit: int) -> UploadStream:
        declared = source.declared_size
        if declared is not None and declared > limit + FORM_OVERHEAD_BYTES:
            raise UploadTooLarge(detail=f"declared body of {declared} bytes")
        upload = await source.open()
        if upload is None:
            raise BadInput("missing_file")
        return upload

    async def _stage_upload(self, upload: UploadStream, cleanup: ExitStack, *, limit: int, suffix: str) -> Path:
        staging_dir = self.settings.staging_dir
        try:
            if staging_dir is not None:
                staging_dir.mkdir(parents=True, exist_ok=True)
            handle = tempfile.NamedTemporaryFile(
                dir=staging_dir,
                prefix="tubely-upload-",
                suffix=suffix,
                delete=False,
            )
        except OSError as exc:
            raise IngestError("staging_failed", detail=str(exc)) from exc

        path = Path(handle.name)
        cleanup.callback(self._discard, path)
        written = 0
        with handle:
            while True:
                chunk = await upload.read(READ_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > limit:
                    raise UploadTooLarge()
                try:
                    handle.write(chunk)
                except OSError as exc:
                    raise IngestError("staging_failed", detail=str(exc)) from exc
            handle.flush()
        self.logger.debug("upload_staged", path=str(path), size_bytes=written)
        return path

    def _put_file(self, path: Path, reference: StorageReference, content_type: str) -> None:
        with path.open("rb") as handle:
            self.storage.put(reference.bucket, reference.key, handle, content_type=content_type)

    def _presign(self, reference: StorageReference) -> str:
        return self.storage.presign(
            reference.bucket,
            reference.key,
            expires_s=self.settings.presign_ttl_seconds,
        )

    async def _persist_reference(self, video: Video, reference: StorageReference, *, field: str) -> None:
        setattr(video, field, reference.to_uri())
        try:
            await self.repository.update(video)
        except MetadataFailure:
            # The object stays in the bucket without a record pointing at it.
            self.logger.error("orphaned_object", bucket=reference.bucket, key=reference.key)
            raise

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as cleanup_error:
            self.logger.warning("staged_file_cleanup_failed", path=str(path), error=str(cleanup_error))


__all__ = [
    "IngestService",
    "UploadSource",
    "UploadStream",
    "FORM_OVERHEAD_BYTES",
    "parse_media_type",
    "parse_video_id",
    "SUPPORTED_VIDEO_TYPE",
    "SUPPORTED_THUMBNAIL_TYPES",
]
