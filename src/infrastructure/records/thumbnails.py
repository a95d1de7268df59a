"""Thumbnail cache."""

import threading
from typing import Optional, Protocol
from uuid import UUID

from ...core.upload.models import Thumbnail


class ThumbnailCache(Protocol):
    """Key-value store for thumbnails, keyed by video id."""

    def get(self, video_id: UUID) -> Optional[Thumbnail]:
        ...

    def put(self, video_id: UUID, thumbnail: Thumbnail) -> None:
        ...

    def remove(self, video_id: UUID) -> None:
        ...


class InMemoryThumbnailCache:
    """Process-local cache. Contents are lost on restart."""

    def __init__(self) -> None:
        self._items: dict[UUID, Thumbnail] = {}
        self._lock = threading.Lock()

    def get(self, video_id: UUID) -> Optional[Thumbnail]:
        with self._lock:
            return self._items.get(video_id)

    def put(self, video_id: UUID, thumbnail: Thumbnail) -> None:
        with self._lock:
            self._items[video_id] = thumbnail

    def remove(self, video_id: UUID) -> None:
        with self._lock:
            self._items.pop(video_id, None)
