from __future__ import annotations

from fastapi import APIRouter, Request, status

from tubely.api import deps
from tubely.api.uploads import StreamingForm
from tubely.core.errors import IngestError

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])


# The body is read incrementally by the handler, so the form is documented by hand.
def _form_file_body(field: str) -> dict:
    return {
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "required": [field],
                        "properties": {field: {"type": "string", "format": "binary"}},
                    }
                }
            },
        }
    }


@router.post("", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: schemas.VideoCreateRequest,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    try:
        record = await service.create_video(
            user_id=context.user_id,
            title=payload.title,
            description=payload.description,
        )
    except IngestError as exc:
        deps.raise_http(exc)
    return schemas.VideoResponse(**record)


@router.get("", response_model=schemas.VideoListResponse)
async def list_videos(service: deps.IngestServiceDependency, context: deps.AuthDependency) -> schemas.VideoListResponse:
    try:
        records = await service.list_videos(user_id=context.user_id)
    except IngestError as exc:
        deps.raise_http(exc)
    return schemas.VideoListResponse(videos=[schemas.VideoResponse(**record) for record in records])


@router.get("/{video_id}", response_model=schemas.VideoResponse)
async def get_video(
    video_id: str,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    try:
        record = await service.get_video(video_id=video_id, user_id=context.user_id)
    except IngestError as exc:
        deps.raise_http(exc)
    return schemas.VideoResponse(**record)


@router.post(
    "/{video_id}/upload",
    response_model=schemas.UploadResponse,
    summary="Upload an MP4 for a video",
    openapi_extra=_form_file_body("video"),
)
async def upload_video(
    video_id: str,
    request: Request,
    service: deps.IngestServiceDependency,
    token: deps.BearerToken,
) -> schemas.UploadResponse:
    try:
        url = await service.ingest_video(video_id=video_id, token=token, source=StreamingForm(request, "video"))
    except IngestError as exc:
        deps.raise_http(exc)
    return schemas.UploadResponse(url=url)


@router.post(
    "/{video_id}/thumbnail",
    response_model=schemas.VideoResponse,
    summary="Upload a thumbnail image",
    openapi_extra=_form_file_body("thumbnail"),
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    service: deps.IngestServiceDependency,
    token: deps.BearerToken,
) -> schemas.VideoResponse:
    try:
        record = await service.upload_thumbnail(
            video_id=video_id,
            token=token,
            source=StreamingForm(request, "thumbnail"),
        )
    except IngestError as exc:
        deps.raise_http(exc)
    return schemas.VideoResponse(**record)


__all__ = ["router"]
