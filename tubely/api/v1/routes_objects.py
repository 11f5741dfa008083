from __future__ import annotations

import mimetypes

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from tubely.api import deps
from tubely.core.errors import IngestError
from tubely.core.storage import MemoryObjectStore, SignedURLStore


router = APIRouter(prefix="/objects", tags=["objects"])


@router.get("/{bucket}/{key:path}", summary="Serve an object through a locally signed URL")
async def get_object(
    bucket: str,
    key: str,
    storage: deps.StorageDependency,
    token: str = Query(...),
) -> StreamingResponse:
    if not isinstance(storage, SignedURLStore):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="object_not_found")
    try:
        storage.verify(bucket, key, token)
    except IngestError as exc:
        deps.raise_http(exc)

    try:
        handle = storage.open(bucket, key)
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="object_not_found")

    media_type = None
    if isinstance(storage, MemoryObjectStore):
        media_type = storage.content_type(bucket, key)
    media_type = media_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
    return StreamingResponse(_iter_chunks(handle), media_type=media_type)


def _iter_chunks(handle, chunk_size: int = 1024 * 1024):
    with handle:
        while chunk := handle.read(chunk_size):
            yield chunk


__all__ = ["router"]
