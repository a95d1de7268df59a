"""
Error taxonomy for the upload pipeline.

Every stage has its own error type so logs can say exactly where an
upload died, while the HTTP layer only needs to know "client mistake"
(ValidationError) versus "we couldn't process it" (everything else).
"""


class UploadProcessingError(Exception):
    """Base class for all upload pipeline errors."""

    stage: str = "unknown"


class ValidationError(UploadProcessingError):
    """
    Upload rejected before any processing.

    Raised for bad content type or size. Nothing has been written to
    disk when this is raised.
    """

    stage = "validation"

    def __init__(self, message: str, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large


class ProbeError(UploadProcessingError):
    """The format prober failed or reported no usable stream."""

    stage = "probe"


class RemuxError(UploadProcessingError):
    """The fast-start remux step failed or timed out."""

    stage = "remux"


class UploadError(UploadProcessingError):
    """The object store did not durably accept the artifact."""

    stage = "upload"


class CleanupError(UploadProcessingError):
    """
    A temporary artifact could not be deleted.

    Only ever logged. A failed delete must not mask the outcome of the
    upload itself.
    """

    stage = "cleanup"
