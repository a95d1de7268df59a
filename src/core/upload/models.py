"""
Domain models for video uploads.

These models have no dependencies on FastAPI, boto3 or ffmpeg. They
describe what an upload is and where it ends up, not how it gets there.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from .errors import ValidationError


class GeometryCategory(Enum):
    """
    Coarse frame geometry used to partition the bucket.

    Only ever used as a storage-key prefix, never stored on its own.
    """
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    OTHER = "other"  # square frames


@dataclass(frozen=True)
class Geometry:
    """Frame dimensions as reported by the prober."""
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Frame dimensions must be positive")

    @property
    def display(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class UploadRequest:
    """
    What the client declared about an upload.

    Validated before a single byte hits the disk.
    """
    content_type: str
    size_bytes: int

    @property
    def media_type(self) -> str:
        """Content type without parameters, lower-cased."""
        return self.content_type.split(";", 1)[0].strip().lower()

    def validate(self, max_size_bytes: int, supported_content_type: str) -> None:
        if self.size_bytes <= 0:
            raise ValidationError("Upload is empty")
        if self.size_bytes > max_size_bytes:
            raise ValidationError(
                f"Upload too large: {self.size_bytes} bytes (max {max_size_bytes})",
                too_large=True,
            )
        if self.media_type != supported_content_type.lower():
            raise ValidationError(
                f"Unsupported content type: {self.content_type or 'missing'}. "
                f"Only {supported_content_type} is accepted."
            )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_storage_key(category: GeometryCategory, unique_id: Optional[str] = None) -> str:
    """
    Build the object key for an upload: <category>/<unique-id>.mp4

    The unique id is a 128-bit random hex string, so keys are never
    reused across uploads.
    """
    unique_id = unique_id or uuid4().hex
    return f"{category.value}/{unique_id}.mp4"


@dataclass(frozen=True)
class Thumbnail:
    """A cached thumbnail image."""
    data: bytes
    media_type: str


@dataclass
class VideoRecord:
    """
    Persisted metadata for a video.

    video_url holds the unsigned storage key at rest. Signed URLs are
    minted on every read and never written back.
    """
    user_id: str
    title: str
    description: str = ""
    id: UUID = field(default_factory=uuid4)
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("Video title cannot be empty")

    @property
    def has_video(self) -> bool:
        return self.video_url is not None

    def attach_video(self, storage_key: str) -> None:
        self.video_url = storage_key
        self.updated_at = utc_now()

    def attach_thumbnail(self, url: str) -> None:
        self.thumbnail_url = url
        self.updated_at = utc_now()
