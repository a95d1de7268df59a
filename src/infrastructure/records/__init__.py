"""
Video record persistence and thumbnail cache.

Both are simple in-memory stores behind Protocols. They are injected
into the API through dependencies, never reached as module globals.
"""

from .thumbnails import InMemoryThumbnailCache, ThumbnailCache
from .videos import InMemoryVideoRepository, VideoNotFoundError, VideoRepository

__all__ = [
    "InMemoryThumbnailCache",
    "ThumbnailCache",
    "InMemoryVideoRepository",
    "VideoNotFoundError",
    "VideoRepository",
]
