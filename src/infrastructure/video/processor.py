"""
Media tooling using FFprobe and FFmpeg.

Two jobs for the upload pipeline:
1. Probe an uploaded file for its frame geometry (ffprobe, JSON output)
2. Remux it for fast-start playback (ffmpeg, stream copy, moov atom first)

Neither step re-encodes anything. Both run the binaries in a worker
thread so the event loop stays free while we wait on the process, and
both put a hard timeout on the process. A timeout counts as a failure
exactly like a non-zero exit.

Mock implementations exist for local development without FFmpeg.
"""

import asyncio
import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ...core.upload.errors import ProbeError, RemuxError
from ...core.upload.models import Geometry
from ...core.upload.pipeline import FastStartRemuxer, MediaProber

logger = logging.getLogger(__name__)

PROCESSED_SUFFIX = ".processed"


def processed_path_for(path: Path) -> Path:
    """Remux output lives next to the input: <input>.processed"""
    return path.with_name(path.name + PROCESSED_SUFFIX)


def verify_ffmpeg_available(binary: str = "ffmpeg") -> bool:
    """Return True if the binary runs and reports a version."""
    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def parse_geometry(probe_output: str) -> Geometry:
    """
    Pull frame dimensions out of ffprobe's JSON.

    Uses the first reported stream that carries dimensions. Audio and
    data streams don't, so an audio-first container still works.
    """
    try:
        info = json.loads(probe_output)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Unparseable ffprobe output: {e}")

    if not isinstance(info, dict):
        raise ProbeError("Unexpected ffprobe output")

    streams = info.get("streams") or []
    if not streams:
        raise ProbeError("No streams found")

    for stream in streams:
        width = stream.get("width")
        height = stream.get("height")
        if width is None or height is None:
            continue
        try:
            return Geometry(width=int(width), height=int(height))
        except (TypeError, ValueError) as e:
            raise ProbeError(f"Invalid frame dimensions {width}x{height}: {e}")

    raise ProbeError("No stream reports frame dimensions")


class FFprobeMediaProber:
    """Geometry probe backed by the ffprobe binary."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout_seconds: float = 30):
        self._ffprobe = ffprobe_path
        self._timeout = timeout_seconds

    def build_command(self, path: Path) -> list[str]:
        # -show_streams only: no decoding, no output file
        return [
            self._ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            str(path),
        ]

    async def probe(self, path: Path) -> Geometry:
        cmd = self.build_command(path)

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise ProbeError(f"FFprobe timed out after {self._timeout}s")
        except OSError as e:
            raise ProbeError(f"Could not run ffprobe: {e}")

        if result.returncode != 0:
            raise ProbeError(
                f"FFprobe exited with {result.returncode}: {result.stderr.strip()}"
            )

        geometry = parse_geometry(result.stdout)

        logger.debug(
            "Probed video",
            extra={"path": str(path), "geometry": geometry.display},
        )

        return geometry


class FFmpegFastStartRemuxer:
    """
    Fast-start remux backed by the ffmpeg binary.

    Copies every stream unchanged and moves the moov atom to the front
    of the file. Global and per-stream metadata are carried over.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout_seconds: float = 600):
        self._ffmpeg = ffmpeg_path
        self._timeout = timeout_seconds

    def output_path_for(self, path: Path) -> Path:
        return processed_path_for(path)

    def build_command(self, path: Path, output_path: Path) -> list[str]:
        return [
            self._ffmpeg,
            "-y",
            "-i", str(path),
            "-map", "0",
            "-map_metadata", "0",
            "-c", "copy",
            "-movflags", "faststart",
            # output name has no .mp4 extension, so be explicit
            "-f", "mp4",
            str(output_path),
        ]

    async def remux(self, path: Path) -> Path:
        output_path = self.output_path_for(path)
        cmd = self.build_command(path, output_path)

        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise RemuxError(f"FFmpeg timed out after {self._timeout}s")
        except OSError as e:
            raise RemuxError(f"Could not run ffmpeg: {e}")

        if result.returncode != 0:
            # ffmpeg is chatty on stderr, keep the tail only
            raise RemuxError(
                f"FFmpeg exited with {result.returncode}: {result.stderr.strip()[-500:]}"
            )

        logger.info(
            "Remuxed video for fast start",
            extra={"path": str(path), "output": str(output_path)},
        )

        return output_path


class MockMediaProber:
    """
    Mock prober for local development without FFmpeg.

    Always reports the configured geometry (1920x1080 by default).
    """

    def __init__(self, geometry: Optional[Geometry] = None):
        self._geometry = geometry or Geometry(width=1920, height=1080)
        logger.info("Initialized mock media prober")

    async def probe(self, path: Path) -> Geometry:
        if not path.exists():
            raise ProbeError(f"File not found: {path}")
        return self._geometry


class MockFastStartRemuxer:
    """Mock remuxer: copies the file byte for byte to the processed path."""

    def __init__(self):
        logger.info("Initialized mock fast-start remuxer")

    def output_path_for(self, path: Path) -> Path:
        return processed_path_for(path)

    async def remux(self, path: Path) -> Path:
        output_path = self.output_path_for(path)
        try:
            await asyncio.to_thread(shutil.copyfile, path, output_path)
        except OSError as e:
            raise RemuxError(f"Copy failed: {e}")
        return output_path


def create_media_prober(
    mock_mode: bool = False,
    ffprobe_path: str = "ffprobe",
    timeout_seconds: float = 30,
) -> MediaProber:
    """
    Factory function for the media prober.

    Args:
        mock_mode: If True, return mock prober (no FFmpeg required)
        ffprobe_path: Path to ffprobe binary (default assumes it's in PATH)
        timeout_seconds: Hard wall-clock limit for one probe
    """
    if mock_mode:
        return MockMediaProber()

    return FFprobeMediaProber(ffprobe_path=ffprobe_path, timeout_seconds=timeout_seconds)


def create_fast_start_remuxer(
    mock_mode: bool = False,
    ffmpeg_path: str = "ffmpeg",
    timeout_seconds: float = 600,
) -> FastStartRemuxer:
    """Factory function for the fast-start remuxer."""
    if mock_mode:
        return MockFastStartRemuxer()

    return FFmpegFastStartRemuxer(ffmpeg_path=ffmpeg_path, timeout_seconds=timeout_seconds)
