"""
Upload processing pipeline.

Takes a raw uploaded file and turns it into a durable, fast-start MP4
in object storage:

    Received -> Probed -> Classified -> Remuxed -> Uploaded -> CleanedUp -> Committed

Any stage can fail into Failed(reason). Whatever happens, every local
file created along the way is deleted before we return. The caller only
gets a storage key back once the object store has accepted the file.

The pipeline only knows the Protocols below. Whether probing is done by
an ffprobe subprocess or an in-process library is not its concern.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union
from uuid import uuid4

from .errors import CleanupError, UploadError, UploadProcessingError
from .geometry import classify_geometry
from .models import Geometry, GeometryCategory, UploadRequest, build_storage_key

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

COPY_CHUNK_SIZE = 1024 * 1024


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class MediaProber(Protocol):
    """Reports frame geometry of a local media file."""

    async def probe(self, path: Path) -> Geometry:
        """Raise ProbeError if the file can't be analysed."""
        ...


class FastStartRemuxer(Protocol):
    """Rewrites a container so playback can start before download finishes."""

    def output_path_for(self, path: Path) -> Path:
        """Where remux(path) will write its output."""
        ...

    async def remux(self, path: Path) -> Path:
        """Write a remuxed copy and return its path. Raise RemuxError on failure."""
        ...


class ObjectStoreUploader(Protocol):
    """The slice of the storage client the pipeline needs."""

    async def upload_file(self, local_path: Path, key: str, content_type: str) -> None:
        """Raise UploadError unless the store durably accepted the file."""
        ...

    async def delete_object(self, key: str) -> None:
        """Remove an object written under key."""
        ...


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class PipelineState(Enum):
    RECEIVED = "received"
    PROBED = "probed"
    CLASSIFIED = "classified"
    REMUXED = "remuxed"
    UPLOADED = "uploaded"
    CLEANED_UP = "cleaned_up"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Outcome of a committed upload."""
    storage_key: str
    category: GeometryCategory
    geometry: Geometry
    states: list[PipelineState] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Temporary artifacts
# ---------------------------------------------------------------------------

class LocalArtifacts:
    """
    Scoped ownership of the temporary files of one pipeline run.

    Paths are registered as soon as they are known, before the step that
    writes them runs, so partial output from a failed step is covered too.
    On exit each path is deleted exactly once. A failed delete is logged
    and never raised, and never stops the remaining deletes.

        with LocalArtifacts(temp_root) as artifacts:
            path = artifacts.new_path(".mp4")
            ...
    """

    def __init__(self, temp_root: Optional[PathLike] = None) -> None:
        self._temp_root = Path(temp_root) if temp_root is not None else None
        self._paths: list[Path] = []
        self._released = False

    def __enter__(self) -> "LocalArtifacts":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def track(self, path: PathLike) -> Path:
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)
        return path

    def new_path(self, suffix: str = "") -> Path:
        """Reserve a unique path under the temp root and track it."""
        if self._temp_root is None:
            raise ValueError("LocalArtifacts has no temp root to allocate paths in")
        self._temp_root.mkdir(parents=True, exist_ok=True)
        return self.track(self._temp_root / f"{uuid4().hex}{suffix}")

    def release(self) -> list[Path]:
        """
        Delete every tracked path. Returns the paths that couldn't be removed.

        Calling it a second time is a no-op.
        """
        if self._released:
            return []
        self._released = True

        leftovers = []
        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                leftovers.append(path)
                error = CleanupError(f"Could not delete {path}: {e}")
                logger.warning(
                    "Failed to delete temporary artifact",
                    extra={"path": str(path), "stage": error.stage, "error": str(error)},
                )
        if self._paths:
            logger.debug(
                "Released temporary artifacts",
                extra={"count": len(self._paths) - len(leftovers)},
            )
        return leftovers


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class UploadPipeline:
    """
    Orchestrates probe -> classify -> remux -> upload -> cleanup.

    Each invocation gets its own artifacts and its own storage key, so
    concurrent uploads never share anything and no locking is needed.
    The only state kept between calls is the set of timed-out uploads
    still finishing in the background, so their objects can be removed.
    """

    def __init__(
        self,
        prober: MediaProber,
        remuxer: FastStartRemuxer,
        storage: ObjectStoreUploader,
        temp_root: PathLike,
        max_upload_size_bytes: int,
        supported_content_type: str = "video/mp4",
        upload_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._prober = prober
        self._remuxer = remuxer
        self._storage = storage
        self._temp_root = Path(temp_root)
        self._max_upload_size_bytes = max_upload_size_bytes
        self._supported_content_type = supported_content_type
        self._upload_timeout = upload_timeout_seconds
        self._background: set[asyncio.Future] = set()

    async def process_upload(
        self,
        stream: BinaryIO,
        content_type: str,
        size_bytes: int,
    ) -> PipelineResult:
        """
        Validate, spool the stream to disk, then run the pipeline.

        Validation happens before anything is written, so a rejected
        upload leaves no trace on disk.
        """
        request = UploadRequest(content_type=content_type, size_bytes=size_bytes)
        request.validate(self._max_upload_size_bytes, self._supported_content_type)

        with LocalArtifacts(self._temp_root) as artifacts:
            received = artifacts.new_path(".mp4")
            await asyncio.to_thread(_spool, stream, received)
            return await self._run(received, request.media_type, artifacts)

    async def process_file(self, path: PathLike, content_type: str) -> PipelineResult:
        """
        Run the pipeline on a file that has already been written.

        The pipeline takes ownership of path and deletes it before
        returning, on success and failure alike.
        """
        with LocalArtifacts(self._temp_root) as artifacts:
            received = artifacts.track(path)
            return await self._run(received, content_type, artifacts)

    async def _run(
        self,
        received: Path,
        content_type: str,
        artifacts: LocalArtifacts,
    ) -> PipelineResult:
        states = [PipelineState.RECEIVED]
        log_extra = {"path": str(received)}

        try:
            geometry = await self._prober.probe(received)
            states.append(PipelineState.PROBED)

            category = classify_geometry(geometry)
            states.append(PipelineState.CLASSIFIED)
            logger.info(
                "Upload classified",
                extra={**log_extra, "geometry": geometry.display, "category": category.value},
            )

            # track before running so a half-written output still gets removed
            artifacts.track(self._remuxer.output_path_for(received))
            processed = artifacts.track(await self._remuxer.remux(received))
            states.append(PipelineState.REMUXED)

            storage_key = build_storage_key(category)
            await self._upload(processed, storage_key, content_type)
            states.append(PipelineState.UPLOADED)
            log_extra["storage_key"] = storage_key

        except UploadProcessingError as e:
            states.append(PipelineState.FAILED)
            logger.error(
                "Upload pipeline failed",
                extra={
                    **log_extra,
                    "stage": e.stage,
                    "last_state": states[-2].value,
                    "error": str(e),
                },
            )
            artifacts.release()
            raise

        # the store has the remuxed copy, so the originals can go
        artifacts.release()
        states.append(PipelineState.CLEANED_UP)
        states.append(PipelineState.COMMITTED)

        logger.info("Upload committed", extra=log_extra)

        return PipelineResult(
            storage_key=storage_key,
            category=category,
            geometry=geometry,
            states=states,
        )

    async def _upload(self, path: Path, key: str, content_type: str) -> None:
        if self._upload_timeout is None:
            await self._storage.upload_file(path, key, content_type)
            return

        # the worker thread behind the upload can't be interrupted, so keep
        # it running and remove whatever it manages to write
        upload = asyncio.ensure_future(self._storage.upload_file(path, key, content_type))
        try:
            await asyncio.wait_for(asyncio.shield(upload), timeout=self._upload_timeout)
        except asyncio.TimeoutError:
            self._background.add(upload)
            upload.add_done_callback(lambda task: self._on_late_upload(task, key))
            raise UploadError(f"Upload timed out after {self._upload_timeout}s")

    def _on_late_upload(self, task: asyncio.Future, key: str) -> None:
        self._background.discard(task)
        if task.cancelled() or task.exception() is not None:
            return
        logger.warning("Timed-out upload completed late", extra={"storage_key": key})
        cleanup = asyncio.ensure_future(self._delete_orphan(key))
        self._background.add(cleanup)
        cleanup.add_done_callback(self._background.discard)

    async def _delete_orphan(self, key: str) -> None:
        try:
            await self._storage.delete_object(key)
        except Exception as e:
            logger.error(
                "Failed to remove orphaned upload",
                extra={"storage_key": key, "error": str(e)},
            )
            return
        logger.info("Removed orphaned upload", extra={"storage_key": key})


def _spool(stream: BinaryIO, destination: Path) -> None:
    with open(destination, "wb") as out:
        shutil.copyfileobj(stream, out, COPY_CHUNK_SIZE)
