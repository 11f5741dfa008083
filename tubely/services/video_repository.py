from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.errors import MetadataFailure, NotFound
from tubely.db.models import Video


class VideoRepository:
    """Metadata store for video records.

    Database errors surface as ``MetadataFailure``; a missing record as
    ``NotFound``. A failed ``reload`` means the write itself went through.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, *, user_id: UUID, title: str, description: str | None) -> Video:
        video = Video(user_id=user_id, title=title, description=description)
        self.session.add(video)
        await self._commit()
        return await self.reload(video)

    async def get(self, video_id: UUID) -> Video:
        try:
            video = await self.session.get(Video, video_id)
        except SQLAlchemyError as exc:
            raise MetadataFailure(detail=str(exc)) from exc
        if video is None:
            raise NotFound()
        return video

    async def list_for_user(self, user_id: UUID) -> list[Video]:
        stmt = select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc())
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise MetadataFailure(detail=str(exc)) from exc
        return list(result.scalars().all())

    async def update(self, video: Video) -> Video:
        """Commit pending changes to ``video``; server-generated columns stay expired until ``reload``."""
        await self._commit()
        return video

    async def reload(self, video: Video) -> Video:
        try:
            await self.session.refresh(video)
        except SQLAlchemyError as exc:
            raise MetadataFailure("metadata_reload_failed", detail=str(exc)) from exc
        return video

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise MetadataFailure(detail=str(exc)) from exc


__all__ = ["VideoRepository"]
