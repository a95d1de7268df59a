"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be swapped via app.dependency_overrides in tests
- Configuration is centralized

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.upload.pipeline import UploadPipeline
from ..infrastructure.records import (
    InMemoryThumbnailCache,
    InMemoryVideoRepository,
    ThumbnailCache,
    VideoRepository,
)
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client
from ..infrastructure.video.processor import create_fast_start_remuxer, create_media_prober

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# boto3 clients are thread-safe and expensive to build, so keep one
_storage_client: Optional[StorageClient] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_current_user_id(
    api_key: Annotated[str, Depends(verify_api_key)],
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Identify the caller. Ownership checks compare against this."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header required",
        )
    return x_user_id.strip()


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

@lru_cache()
def get_video_repository() -> VideoRepository:
    """Shared record store. Override in tests for a fresh one."""
    logger.info("Created in-memory video repository")
    return InMemoryVideoRepository()


@lru_cache()
def get_thumbnail_cache() -> ThumbnailCache:
    return InMemoryThumbnailCache()


def get_storage_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageClient:
    """
    Provide storage client for uploads and presigned URLs.

    Returns either S3 client or mock client based on settings. The mock
    client is shared across requests so uploaded objects persist during
    the session.
    """
    global _storage_client

    if _storage_client is None:
        if settings.storage_mock_mode:
            _storage_client = create_storage_client(mock_mode=True)
            logger.info("Created shared mock storage client for session")
        else:
            config = StorageConfig(
                bucket_name=settings.s3_bucket,
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key_id=settings.s3_access_key_id,
                secret_access_key=settings.s3_secret_access_key,
                verify_uploads=settings.s3_verify_uploads,
            )
            _storage_client = create_storage_client(config=config)

    return _storage_client


def get_upload_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    storage: Annotated[StorageClient, Depends(get_storage_client)],
) -> UploadPipeline:
    """
    Provide an upload pipeline.

    The pipeline is stateless, so a new one per request costs nothing
    and keeps requests fully isolated.
    """
    prober = create_media_prober(
        mock_mode=settings.media_mock_mode,
        ffprobe_path=settings.ffprobe_path,
        timeout_seconds=settings.probe_timeout_seconds,
    )
    remuxer = create_fast_start_remuxer(
        mock_mode=settings.media_mock_mode,
        ffmpeg_path=settings.ffmpeg_path,
        timeout_seconds=settings.remux_timeout_seconds,
    )

    return UploadPipeline(
        prober=prober,
        remuxer=remuxer,
        storage=storage,
        temp_root=settings.temp_root,
        max_upload_size_bytes=settings.max_upload_size_bytes,
        supported_content_type=settings.supported_content_type,
        upload_timeout_seconds=settings.upload_timeout_seconds,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
VideoRepositoryDep = Annotated[VideoRepository, Depends(get_video_repository)]
ThumbnailCacheDep = Annotated[ThumbnailCache, Depends(get_thumbnail_cache)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
UploadPipelineDep = Annotated[UploadPipeline, Depends(get_upload_pipeline)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
