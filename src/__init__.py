"""
Video upload service - accepts MP4 uploads and delivers them from object storage.

This package contains the complete application:
- core: Framework-agnostic upload pipeline
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
