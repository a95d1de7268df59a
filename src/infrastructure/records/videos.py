"""
Video record repository.

The upload pipeline never writes here itself. Once it returns a storage
key, the route stores that key on the record through this repository.
"""

import logging
import threading
from typing import Optional, Protocol
from uuid import UUID

from ...core.upload.models import VideoRecord

logger = logging.getLogger(__name__)


class VideoNotFoundError(Exception):
    """Raised when updating or deleting a record that doesn't exist."""
    pass


class VideoRepository(Protocol):
    """CRUD for video records."""

    def create(self, record: VideoRecord) -> VideoRecord:
        ...

    def get(self, video_id: UUID) -> Optional[VideoRecord]:
        ...

    def list_for_user(self, user_id: str) -> list[VideoRecord]:
        ...

    def update(self, record: VideoRecord) -> VideoRecord:
        ...

    def delete(self, video_id: UUID) -> None:
        ...


class InMemoryVideoRepository:
    """
    Dict-backed repository.

    Records live for the lifetime of the process. The lock keeps
    concurrent requests from interleaving writes.
    """

    def __init__(self) -> None:
        self._records: dict[UUID, VideoRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            self._records[record.id] = record
        logger.info(
            "Created video record",
            extra={"video_id": str(record.id), "user_id": record.user_id}
        )
        return record

    def get(self, video_id: UUID) -> Optional[VideoRecord]:
        with self._lock:
            return self._records.get(video_id)

    def list_for_user(self, user_id: str) -> list[VideoRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.user_id == user_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def update(self, record: VideoRecord) -> VideoRecord:
        with self._lock:
            if record.id not in self._records:
                raise VideoNotFoundError(f"Video not found: {record.id}")
            self._records[record.id] = record
        logger.debug("Updated video record", extra={"video_id": str(record.id)})
        return record

    def delete(self, video_id: UUID) -> None:
        with self._lock:
            if self._records.pop(video_id, None) is None:
                raise VideoNotFoundError(f"Video not found: {video_id}")
        logger.info("Deleted video record", extra={"video_id": str(video_id)})
