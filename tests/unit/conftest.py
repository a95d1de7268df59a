"""
Shared fakes for pipeline and API tests.

The fakes record what was called so tests can assert which stages ran,
and can be told to fail at a given stage.
"""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from src.core.upload.errors import ProbeError, RemuxError, UploadError
from src.core.upload.models import Geometry


class FakeProber:
    def __init__(self, geometry: Geometry = Geometry(1920, 1080), fail: bool = False):
        self.geometry = geometry
        self.fail = fail
        self.calls: list[Path] = []

    async def probe(self, path: Path) -> Geometry:
        self.calls.append(path)
        if self.fail:
            raise ProbeError("ffprobe exited with 1")
        return self.geometry


class FakeRemuxer:
    """Writes <input>.processed. With fail=True, leaves a partial file behind."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[Path] = []

    def output_path_for(self, path: Path) -> Path:
        return path.with_name(path.name + ".processed")

    async def remux(self, path: Path) -> Path:
        self.calls.append(path)
        output = self.output_path_for(path)
        if self.fail:
            output.write_bytes(b"partial")
            raise RemuxError("ffmpeg exited with 1")
        output.write_bytes(b"faststart:" + path.read_bytes())
        return output


class FakeStorage:
    """
    In-memory object store.

    Snapshots which local files still exist at upload time, so tests can
    check nothing was deleted before the store accepted the copy.
    """

    def __init__(self, fail: bool = False, delay: Optional[float] = None):
        self.fail = fail
        self.delay = delay
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.existing_at_upload: list[Path] = []
        self.deleted: list[str] = []

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        self.existing_at_upload = sorted(local_path.parent.iterdir())
        data = local_path.read_bytes()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise UploadError("connection reset")
        self.objects[key] = data
        self.content_types[key] = content_type

    async def delete_object(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)
        self.content_types.pop(key, None)


@pytest.fixture
def temp_root(tmp_path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def received_file(temp_root) -> Path:
    """A raw upload already written by the HTTP layer."""
    path = temp_root / "raw-upload.mp4"
    path.write_bytes(b"raw mp4 bytes")
    return path
