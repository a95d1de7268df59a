"""
Video API endpoints.

Flow for getting a video into storage:
1. POST /api/videos              -> create a draft record
2. POST /api/videos/{id}/upload  -> upload the MP4; it is probed, remuxed
                                    for fast start and moved to object storage
3. GET  /api/videos/{id}         -> record with a freshly signed video URL

The record only ever stores the unsigned storage key. Signed URLs are
minted per response and expire on their own.
"""

import logging
from datetime import datetime
from typing import Annotated, BinaryIO, Optional
from uuid import UUID

from fastapi import APIRouter, File, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from ...config.settings import Settings
from ...core.upload.errors import UploadProcessingError, ValidationError
from ...core.upload.models import VideoRecord
from ...infrastructure.storage.client import StorageClient, StorageError
from ..dependencies import (
    CurrentUserId,
    SettingsDep,
    StorageClientDep,
    ThumbnailCacheDep,
    UploadPipelineDep,
    VideoRepositoryDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateVideoRequest(BaseModel):
    """Draft video metadata."""
    title: str = Field(min_length=1, max_length=200, description="Video title")
    description: str = Field(default="", max_length=5000, description="Free-form description")


class VideoResponse(BaseModel):
    """A video record as clients see it."""
    id: UUID = Field(description="Video identifier")
    user_id: str = Field(description="Owner")
    title: str
    description: str
    video_url: Optional[str] = Field(None, description="Presigned, time-limited URL (None until uploaded)")
    thumbnail_url: Optional[str] = Field(None, description="Thumbnail URL, if one was uploaded")
    created_at: datetime
    updated_at: datetime


class VideoListResponse(BaseModel):
    videos: list[VideoResponse]
    total: int


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

async def to_video_response(
    record: VideoRecord,
    storage: StorageClient,
    settings: Settings,
) -> VideoResponse:
    """Render a record, swapping the stored key for a signed URL."""
    video_url = None
    if record.video_url:
        try:
            video_url = await storage.get_presigned_url(
                record.video_url,
                expiry_seconds=settings.presign_expiry_seconds,
            )
        except StorageError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not generate video URL",
            )

    return VideoResponse(
        id=record.id,
        user_id=record.user_id,
        title=record.title,
        description=record.description,
        video_url=video_url,
        thumbnail_url=record.thumbnail_url,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def get_owned_video(
    repository: VideoRepositoryDep,
    video_id: UUID,
    user_id: str,
) -> VideoRecord:
    """Fetch a record, 404 if missing and 403 if someone else owns it."""
    record = repository.get(video_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Video {video_id} not found",
        )
    if record.user_id != user_id:
        logger.warning(
            "Video access denied",
            extra={"video_id": str(video_id), "user_id": user_id}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this video",
        )
    return record


def measure_stream(stream: BinaryIO) -> int:
    """Size of a seekable stream, leaving it rewound."""
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)
    return size


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=VideoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create video draft",
)
async def create_video(
    request: CreateVideoRequest,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> VideoResponse:
    """Create an empty video record to upload into."""
    record = repository.create(VideoRecord(
        user_id=user_id,
        title=request.title,
        description=request.description,
    ))
    return await to_video_response(record, storage, settings)


@router.get(
    "",
    response_model=VideoListResponse,
    summary="List my videos",
)
async def list_videos(
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> VideoListResponse:
    records = repository.list_for_user(user_id)
    videos = [await to_video_response(r, storage, settings) for r in records]
    return VideoListResponse(videos=videos, total=len(videos))


@router.get(
    "/{video_id}",
    response_model=VideoResponse,
    summary="Get video",
    description="Returns the video with a presigned URL valid for the configured expiry.",
)
async def get_video(
    video_id: UUID,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> VideoResponse:
    record = get_owned_video(repository, video_id, user_id)
    return await to_video_response(record, storage, settings)


@router.delete(
    "/{video_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete video",
)
async def delete_video(
    video_id: UUID,
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    cache: ThumbnailCacheDep,
) -> None:
    """Delete the record, its stored object and any cached thumbnail."""
    record = get_owned_video(repository, video_id, user_id)

    if record.video_url:
        try:
            await storage.delete_object(record.video_url)
        except StorageError:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not delete stored video",
            )

    cache.remove(video_id)
    repository.delete(video_id)


@router.post(
    "/{video_id}/upload",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload video file",
    description="Upload an MP4. It is remuxed for fast start and stored by frame orientation.",
)
async def upload_video(
    video_id: UUID,
    video: Annotated[UploadFile, File(description="MP4 video")],
    user_id: CurrentUserId,
    repository: VideoRepositoryDep,
    storage: StorageClientDep,
    pipeline: UploadPipelineDep,
    settings: SettingsDep,
) -> VideoResponse:
    """
    Run an uploaded file through the processing pipeline.

    The record is only updated after the pipeline commits. Any stage
    failure leaves it untouched and returns a generic 500; the failing
    stage is in the logs, not the response.
    """
    record = get_owned_video(repository, video_id, user_id)

    size_bytes = video.size if video.size is not None else measure_stream(video.file)
    content_type = video.content_type or ""

    logger.info(
        "Video upload started",
        extra={
            "video_id": str(video_id),
            "user_id": user_id,
            "content_type": content_type,
            "size_bytes": size_bytes,
        }
    )

    try:
        result = await pipeline.process_upload(video.file, content_type, size_bytes)
    except ValidationError as e:
        raise HTTPException(
            status_code=(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if e.too_large
                else status.HTTP_400_BAD_REQUEST
            ),
            detail=str(e),
        )
    except UploadProcessingError as e:
        logger.error(
            "Video processing failed",
            extra={"video_id": str(video_id), "stage": e.stage}
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not process video",
        )
    finally:
        await video.close()

    replaced_key = record.video_url
    record.attach_video(result.storage_key)
    repository.update(record)

    # the record no longer points at the old object
    if replaced_key and replaced_key != result.storage_key:
        try:
            await storage.delete_object(replaced_key)
        except StorageError as e:
            logger.warning(
                "Could not delete replaced video",
                extra={"video_id": str(video_id), "storage_key": replaced_key, "error": str(e)}
            )

    logger.info(
        "Video upload complete",
        extra={
            "video_id": str(video_id),
            "storage_key": result.storage_key,
            "category": result.category.value,
        }
    )

    return await to_video_response(record, storage, settings)
