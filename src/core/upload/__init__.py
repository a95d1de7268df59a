"""
Upload processing.

Contains the domain models, geometry classification and the pipeline
that moves an uploaded file into object storage.
"""

from .errors import (
    CleanupError,
    ProbeError,
    RemuxError,
    UploadError,
    UploadProcessingError,
    ValidationError,
)
from .geometry import classify, classify_geometry
from .models import (
    Geometry,
    GeometryCategory,
    Thumbnail,
    UploadRequest,
    VideoRecord,
    build_storage_key,
)
from .pipeline import (
    FastStartRemuxer,
    LocalArtifacts,
    MediaProber,
    ObjectStoreUploader,
    PipelineResult,
    PipelineState,
    UploadPipeline,
)

__all__ = [
    "CleanupError",
    "ProbeError",
    "RemuxError",
    "UploadError",
    "UploadProcessingError",
    "ValidationError",
    "classify",
    "classify_geometry",
    "Geometry",
    "GeometryCategory",
    "Thumbnail",
    "UploadRequest",
    "VideoRecord",
    "build_storage_key",
    "FastStartRemuxer",
    "LocalArtifacts",
    "MediaProber",
    "ObjectStoreUploader",
    "PipelineResult",
    "PipelineState",
    "UploadPipeline",
]
