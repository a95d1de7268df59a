"""
Object storage client for processed videos.

Works with AWS S3 or any S3-compatible store (R2, MinIO) through boto3,
with a mock mode for local development.

Objects are written under keys the pipeline generates
(<category>/<uuid>.mp4) and read back only through presigned URLs.
Presigning is a local HMAC computation (SigV4), so no network round
trip is needed to hand out a URL. The store checks the embedded expiry
itself.

Mock mode keeps objects in memory and signs its fake URLs with HMAC
too, so expiry behaviour can be tested without a bucket.
"""

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import parse_qs, urlencode, urlparse

from ...core.upload.errors import UploadError

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when non-upload storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """
    Configuration for S3-compatible storage.

    endpoint_url is only needed for non-AWS stores. Leaving the
    credentials empty falls back to boto3's default credential chain
    (env vars, shared config, instance role).
    """
    bucket_name: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    connect_timeout_seconds: float = 10
    read_timeout_seconds: float = 60
    verify_uploads: bool = True


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Tests provide in-memory fakes; the pipeline needs upload_file and
    delete_object.
    """

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        """Upload a local file under key. Raises UploadError on failure."""
        ...

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        """Generate a time-limited download URL."""
        ...

    async def delete_object(self, key: str) -> None:
        """Remove a stored object."""
        ...


class S3StorageClient:
    """
    S3 object storage client.

    boto3 is synchronous, so blocking calls run in a worker thread. The
    methods stay async to match the Protocol.
    """

    def __init__(self, config: StorageConfig) -> None:
        """
        Initialize S3 client with boto3.

        We import boto3 here (not at module level) because mock mode
        doesn't need it.
        """
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        boto_config = Config(
            signature_version="s3v4",
            connect_timeout=config.connect_timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            retries={"max_attempts": 3, "mode": "standard"},
        )

        self._s3_client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id or None,
            aws_secret_access_key=config.secret_access_key or None,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "region": config.region,
                "endpoint": config.endpoint_url or "aws",
            }
        )

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        """
        Upload a local file to the bucket.

        Streams from disk (multipart for large files) instead of reading
        the whole video into memory. With verify_uploads on, the stored
        object size is checked against the local file before returning,
        so the caller never deletes its only copy on a truncated upload.
        """
        try:
            local_size = local_path.stat().st_size
            await asyncio.to_thread(
                self._s3_client.upload_file,
                str(local_path),
                self._config.bucket_name,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except Exception as e:
            logger.error(
                "Failed to upload video",
                extra={"storage_key": key, "error": str(e)}
            )
            raise UploadError(f"Upload failed: {e}")

        if self._config.verify_uploads:
            await self._verify_upload(key, local_size)

        logger.info(
            "Uploaded video",
            extra={
                "storage_key": key,
                "size_bytes": local_size,
                "content_type": content_type,
            }
        )

    async def _verify_upload(self, key: str, expected_size: int) -> None:
        try:
            head = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except Exception as e:
            raise UploadError(f"Could not verify upload of {key}: {e}")

        stored_size = head.get("ContentLength")
        if stored_size != expected_size:
            logger.error(
                "Stored object size mismatch",
                extra={
                    "storage_key": key,
                    "expected": expected_size,
                    "stored": stored_size,
                }
            )
            # never leave a truncated object behind under a key nobody holds
            await self._discard(key)
            raise UploadError(
                f"Stored size {stored_size} does not match local size {expected_size}"
            )

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        """
        Generate a temporary download URL.

        Minted fresh on every call, never cached: each read gets its own
        expiry window.
        """
        try:
            return self._s3_client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self._config.bucket_name,
                    "Key": key,
                },
                ExpiresIn=expiry_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to generate presigned URL",
                extra={"storage_key": key, "error": str(e)}
            )
            raise StorageError(f"Presigned URL generation failed: {e}")

    async def delete_object(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._s3_client.delete_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except Exception as e:
            logger.error(
                "Failed to delete object",
                extra={"storage_key": key, "error": str(e)}
            )
            raise StorageError(f"Delete failed: {e}")

        logger.info("Deleted object", extra={"storage_key": key})

    async def _discard(self, key: str) -> None:
        """Best-effort delete; a failure is logged, not raised."""
        try:
            await self.delete_object(key)
        except StorageError as e:
            logger.warning(
                "Could not remove rejected upload",
                extra={"storage_key": key, "error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development and tests.

    Objects are kept in a dict. Presigned URLs look like

        mock://storage/<key>?expires=<epoch>&signature=<hex>

    and verify_presigned_url() plays the part of the store, refusing a
    URL with a bad signature or a past expiry.
    """

    def __init__(
        self,
        signing_secret: str = "mock-signing-secret",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._objects: dict[str, bytes] = {}
        self._content_types: dict[str, str] = {}
        self._secret = signing_secret.encode()
        self._clock = clock
        logger.info("Initialized mock storage client (in-memory)")

    @property
    def keys(self) -> list[str]:
        return sorted(self._objects)

    def get_object(self, key: str) -> bytes:
        if key not in self._objects:
            raise StorageError(f"Object not found: {key}")
        return self._objects[key]

    def content_type_of(self, key: str) -> Optional[str]:
        return self._content_types.get(key)

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        try:
            data = await asyncio.to_thread(local_path.read_bytes)
        except OSError as e:
            raise UploadError(f"Upload failed: {e}")

        self._objects[key] = data
        self._content_types[key] = content_type

        logger.debug(
            "Stored video in mock storage",
            extra={"storage_key": key, "size_bytes": len(data)}
        )

    async def get_presigned_url(self, key: str, expiry_seconds: int = 3600) -> str:
        expires = int(self._clock()) + expiry_seconds
        query = urlencode({"expires": expires, "signature": self._sign(key, expires)})
        return f"mock://storage/{key}?{query}"

    async def delete_object(self, key: str) -> None:
        self._objects.pop(key, None)
        self._content_types.pop(key, None)

    def verify_presigned_url(self, url: str, now: Optional[float] = None) -> bool:
        """Would the store serve this URL at time `now`?"""
        parsed = urlparse(url)
        key = parsed.path.lstrip("/")
        params = parse_qs(parsed.query)
        try:
            expires = int(params["expires"][0])
            signature = params["signature"][0]
        except (KeyError, IndexError, ValueError):
            return False

        if not hmac.compare_digest(signature, self._sign(key, expires)):
            return False

        now = self._clock() if now is None else now
        return now < expires and key in self._objects

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}\n{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (S3 or Mock)
    """
    if mock_mode:
        return MockStorageClient()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return S3StorageClient(config)
