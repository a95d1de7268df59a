"""
Video tooling infrastructure.

Wraps FFmpeg/FFprobe for the upload pipeline:
- Frame geometry probing
- Fast-start remuxing (stream copy, no re-encode)
"""

from .processor import (
    FFmpegFastStartRemuxer,
    FFprobeMediaProber,
    MockFastStartRemuxer,
    MockMediaProber,
    create_fast_start_remuxer,
    create_media_prober,
    parse_geometry,
    processed_path_for,
    verify_ffmpeg_available,
)

__all__ = [
    "FFmpegFastStartRemuxer",
    "FFprobeMediaProber",
    "MockFastStartRemuxer",
    "MockMediaProber",
    "create_fast_start_remuxer",
    "create_media_prober",
    "parse_geometry",
    "processed_path_for",
    "verify_ffmpeg_available",
]
