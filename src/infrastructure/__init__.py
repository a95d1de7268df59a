"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- video: FFprobe/FFmpeg
- storage: Object storage (S3-compatible)
- records: Video records and thumbnail cache

These wrappers translate between external formats and our domain models.
"""
