"""
Thumbnail endpoints.

Thumbnails are small, so they live in the injected cache rather than
going through the upload pipeline.
"""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, Response, UploadFile, status

from ...core.upload.models import Thumbnail
from ..dependencies import (
    CurrentUserId,
    SettingsDep,
    StorageClientDep,
    ThumbnailCacheDep,
    VideoRepositoryDep,
)
from .videos import VideoResponse, get_owned_video, to_video_response

logger = logging.getLogger(__name__)

router = APIRouter()


def thumbnail_url_for(video_id: UUID) -> str:
    return f"/api/thumbnails/{video_id}"


@router.get(
    "/{video_id}",
    summary="Get thumbnail",
    responses={200: {"content": {"image/*": {}}}},
)
async def get_thumbnail(
    video_id: UUID,
    repository: VideoRepositoryDep,
    cache: ThumbnailCacheDep,
) -> Response:
    if repository.get(video_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Couldn't find video",
        )

    thumbnail = cache.get(video_id)
    if thumbnail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Thumbnail not found",
        )

    return Response(
        content=thumbnail.data,
        media_type=thumbnail.media_type,
        headers={"Cache-Control": "no-store"},
    )


@router.post(
    "/{video_id}",
    response_model=VideoResponse,
    summary="Upload thumbnail",
)
async def upload_thumbnail(
    video_id: UUID,
    thumbnail: Annotated[UploadFile, File(description="Thumbnail image")],
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    cache: ThumbnailCacheDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> VideoResponse:
    record = get_owned_video(repository, video_id, user_id)

    media_type = (thumbnail.content_type or "").split(";", 1)[0].strip().lower()
    if not media_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Thumbnail must be an image",
        )

    # read one byte past the limit to detect oversize without trusting headers
    data = await thumbnail.read(settings.max_thumbnail_size_bytes + 1)
    await thumbnail.close()
    if len(data) > settings.max_thumbnail_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Thumbnail too large",
        )
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Thumbnail is empty",
        )

    cache.put(video_id, Thumbnail(data=data, media_type=media_type))
    record.attach_thumbnail(thumbnail_url_for(video_id))
    repository.update(record)

    logger.info(
        "Thumbnail stored",
        extra={"video_id": str(video_id), "size_bytes": len(data)}
    )

    return await to_video_response(record, storage, settings)
