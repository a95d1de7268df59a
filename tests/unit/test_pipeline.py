"""
Unit tests for the upload pipeline.

The central property: whatever happens, the temp directory ends up
exactly as empty as it started, and a storage key only comes back when
the store has accepted the file.
"""

import asyncio
import io
from pathlib import Path

import pytest

from conftest import FakeProber, FakeRemuxer, FakeStorage
from src.core.upload.errors import ProbeError, RemuxError, UploadError, ValidationError
from src.core.upload.models import Geometry, GeometryCategory
from src.core.upload.pipeline import LocalArtifacts, PipelineState, UploadPipeline


GIB = 1024 * 1024 * 1024


def make_pipeline(temp_root, prober=None, remuxer=None, storage=None, **kwargs) -> UploadPipeline:
    return UploadPipeline(
        prober=prober or FakeProber(),
        remuxer=remuxer or FakeRemuxer(),
        storage=storage or FakeStorage(),
        temp_root=temp_root,
        max_upload_size_bytes=kwargs.pop("max_upload_size_bytes", 10 * GIB),
        **kwargs,
    )


def leftover_files(root: Path) -> list[Path]:
    return sorted(root.iterdir()) if root.exists() else []


# ---------------------------------------------------------------------------
# Success Path
# ---------------------------------------------------------------------------

class TestSuccessfulUpload:
    """Tests for a pipeline run where every stage succeeds."""

    def test_returns_key_and_uploads_remuxed_copy(self, temp_root, received_file):
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, storage=storage)

        result = asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert result.storage_key in storage.objects
        assert storage.objects[result.storage_key] == b"faststart:raw mp4 bytes"
        assert storage.content_types[result.storage_key] == "video/mp4"

    def test_walks_every_state_in_order(self, temp_root, received_file):
        pipeline = make_pipeline(temp_root)

        result = asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert result.states == [
            PipelineState.RECEIVED,
            PipelineState.PROBED,
            PipelineState.CLASSIFIED,
            PipelineState.REMUXED,
            PipelineState.UPLOADED,
            PipelineState.CLEANED_UP,
            PipelineState.COMMITTED,
        ]

    def test_leaves_no_temporary_files(self, temp_root, received_file):
        pipeline = make_pipeline(temp_root)

        asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert leftover_files(temp_root) == []

    def test_originals_kept_until_store_accepts_copy(self, temp_root, received_file):
        """Both files must still exist while the upload is in flight."""
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, storage=storage)

        asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert storage.existing_at_upload == sorted([
            received_file,
            received_file.with_name(received_file.name + ".processed"),
        ])

    @pytest.mark.parametrize("width,height,prefix", [
        (1920, 1080, "landscape/"),
        (1080, 1920, "portrait/"),
        (500, 500, "other/"),
    ])
    def test_key_prefix_follows_geometry(self, temp_root, received_file, width, height, prefix):
        pipeline = make_pipeline(temp_root, prober=FakeProber(Geometry(width, height)))

        result = asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert result.storage_key.startswith(prefix)
        assert result.storage_key.endswith(".mp4")

    def test_each_run_gets_a_fresh_key(self, temp_root):
        pipeline = make_pipeline(temp_root)
        keys = set()
        for i in range(3):
            path = temp_root / f"upload-{i}.mp4"
            path.write_bytes(b"same bytes")
            keys.add(asyncio.run(pipeline.process_file(path, "video/mp4")).storage_key)

        assert len(keys) == 3


# ---------------------------------------------------------------------------
# Failure Paths
# ---------------------------------------------------------------------------

class TestProbeFailure:
    """A probe failure stops everything but still cleans up."""

    def test_no_remux_or_upload_runs(self, temp_root, received_file):
        remuxer = FakeRemuxer()
        storage = FakeStorage()
        pipeline = make_pipeline(
            temp_root, prober=FakeProber(fail=True), remuxer=remuxer, storage=storage
        )

        with pytest.raises(ProbeError):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert remuxer.calls == []
        assert storage.objects == {}

    def test_received_file_removed(self, temp_root, received_file):
        pipeline = make_pipeline(temp_root, prober=FakeProber(fail=True))

        with pytest.raises(ProbeError):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert leftover_files(temp_root) == []


class TestRemuxFailure:
    """A remux failure skips the upload and removes partial output."""

    def test_no_upload_runs(self, temp_root, received_file):
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, remuxer=FakeRemuxer(fail=True), storage=storage)

        with pytest.raises(RemuxError):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert storage.objects == {}

    def test_received_and_partial_output_removed(self, temp_root, received_file):
        pipeline = make_pipeline(temp_root, remuxer=FakeRemuxer(fail=True))

        with pytest.raises(RemuxError):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert leftover_files(temp_root) == []


class TestUploadFailure:
    """An upload failure removes everything and returns no key."""

    def test_both_artifacts_removed(self, temp_root, received_file):
        pipeline = make_pipeline(temp_root, storage=FakeStorage(fail=True))

        with pytest.raises(UploadError):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert leftover_files(temp_root) == []

    def test_timeout_counts_as_upload_failure(self, temp_root, received_file):
        pipeline = make_pipeline(
            temp_root,
            storage=FakeStorage(delay=1.0),
            upload_timeout_seconds=0.05,
        )

        with pytest.raises(UploadError, match="timed out"):
            asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert leftover_files(temp_root) == []

    def test_late_finishing_upload_is_removed_from_store(self, temp_root, received_file):
        storage = FakeStorage(delay=0.2)
        pipeline = make_pipeline(temp_root, storage=storage, upload_timeout_seconds=0.05)

        async def run():
            with pytest.raises(UploadError, match="timed out"):
                await pipeline.process_file(received_file, "video/mp4")
            # let the abandoned upload finish
            await asyncio.sleep(0.4)

        asyncio.run(run())

        assert len(storage.deleted) == 1
        assert storage.deleted[0].startswith("landscape/")
        assert storage.objects == {}
        assert leftover_files(temp_root) == []

    def test_late_failing_upload_needs_no_removal(self, temp_root, received_file):
        storage = FakeStorage(delay=0.2, fail=True)
        pipeline = make_pipeline(temp_root, storage=storage, upload_timeout_seconds=0.05)

        async def run():
            with pytest.raises(UploadError, match="timed out"):
                await pipeline.process_file(received_file, "video/mp4")
            await asyncio.sleep(0.4)

        asyncio.run(run())

        assert storage.deleted == []
        assert storage.objects == {}


# ---------------------------------------------------------------------------
# Streamed Uploads
# ---------------------------------------------------------------------------

class TestProcessUpload:
    """Tests for spooling a stream into the pipeline."""

    def test_stream_is_processed_and_cleaned_up(self, temp_root):
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, storage=storage)
        data = b"x" * 4096

        result = asyncio.run(pipeline.process_upload(io.BytesIO(data), "video/mp4", len(data)))

        assert storage.objects[result.storage_key] == b"faststart:" + data
        assert leftover_files(temp_root) == []

    def test_invalid_type_rejected_before_writing(self, temp_root):
        prober = FakeProber()
        pipeline = make_pipeline(temp_root, prober=prober)

        with pytest.raises(ValidationError):
            asyncio.run(pipeline.process_upload(io.BytesIO(b"png"), "image/png", 3))

        assert prober.calls == []
        assert leftover_files(temp_root) == []

    def test_oversize_rejected_before_writing(self, temp_root):
        pipeline = make_pipeline(temp_root, max_upload_size_bytes=10)

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(pipeline.process_upload(io.BytesIO(b"x" * 11), "video/mp4", 11))

        assert exc_info.value.too_large
        assert leftover_files(temp_root) == []

    def test_spooled_files_are_unique_per_invocation(self, temp_root):
        prober = FakeProber()
        pipeline = make_pipeline(temp_root, prober=prober)

        for _ in range(2):
            asyncio.run(pipeline.process_upload(io.BytesIO(b"abc"), "video/mp4", 3))

        assert len(set(prober.calls)) == 2

    def test_concurrent_uploads_do_not_interfere(self, temp_root):
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, storage=storage)

        async def run_all():
            return await asyncio.gather(*[
                pipeline.process_upload(io.BytesIO(bytes([i]) * 10), "video/mp4", 10)
                for i in range(5)
            ])

        results = asyncio.run(run_all())

        assert len({r.storage_key for r in results}) == 5
        assert len(storage.objects) == 5
        assert leftover_files(temp_root) == []


# ---------------------------------------------------------------------------
# Local Artifacts
# ---------------------------------------------------------------------------

class TestLocalArtifacts:
    """Tests for scoped temp-file cleanup."""

    def test_release_deletes_tracked_paths(self, temp_root):
        with LocalArtifacts(temp_root) as artifacts:
            a = artifacts.new_path(".mp4")
            a.write_bytes(b"a")
            b = artifacts.track(temp_root / "b.bin")
            b.write_bytes(b"b")

        assert not a.exists()
        assert not b.exists()

    def test_missing_paths_are_fine(self, temp_root):
        with LocalArtifacts(temp_root) as artifacts:
            artifacts.track(temp_root / "never-written")

    def test_release_runs_once(self, temp_root):
        artifacts = LocalArtifacts(temp_root)
        path = artifacts.new_path()
        path.write_bytes(b"a")

        artifacts.release()
        path.write_bytes(b"recreated")
        artifacts.release()

        assert path.exists()

    def test_one_failed_delete_does_not_block_the_rest(self, temp_root, monkeypatch):
        artifacts = LocalArtifacts(temp_root)
        stuck = artifacts.track(temp_root / "stuck")
        other = artifacts.track(temp_root / "other")
        stuck.write_bytes(b"x")
        other.write_bytes(b"y")

        original_unlink = Path.unlink

        def flaky_unlink(self, missing_ok=False):
            if self == stuck:
                raise PermissionError("read-only")
            return original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", flaky_unlink)

        leftovers = artifacts.release()

        assert leftovers == [stuck]
        assert not other.exists()

    def test_cleanup_failure_does_not_mask_success(self, temp_root, received_file, monkeypatch):
        storage = FakeStorage()
        pipeline = make_pipeline(temp_root, storage=storage)

        def failing_unlink(self, missing_ok=False):
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "unlink", failing_unlink)

        result = asyncio.run(pipeline.process_file(received_file, "video/mp4"))

        assert result.storage_key in storage.objects
        assert result.category == GeometryCategory.LANDSCAPE
