"""
FastAPI application entry point.

Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn src.main:app --reload

For production:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, thumbnails, videos
from .config.settings import get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Runs on startup and shutdown. On startup we make sure the temp root
    exists and report configuration problems early.
    """
    settings = get_settings()

    logger.info(
        "Video upload API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {
                "storage": settings.storage_mock_mode,
                "media": settings.media_mock_mode,
            }
        }
    )

    settings.temp_root.mkdir(parents=True, exist_ok=True)

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # readiness reports this too, so keep serving and let the probe fail
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("Video upload API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Called once at startup in production, and by tests that want an app
    with dependency overrides.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Video upload and delivery.

        ## Workflow

        1. **Create a video**: `POST /api/videos`
        2. **Upload the MP4**: `POST /api/videos/{video_id}/upload`
           - The file is remuxed for fast start and stored in object storage
        3. **Watch it**: `GET /api/videos/{video_id}`
           - Returns a presigned URL that expires after an hour

        ## Authentication

        Provide an API key in `X-API-Key` and the caller in `X-User-Id`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        videos.router,
        prefix="/api/videos",
        tags=["Videos"],
    )

    app.include_router(
        thumbnails.router,
        prefix="/api/thumbnails",
        tags=["Thumbnails"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": settings.api_title,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Stack traces stay in the server log; clients get a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error."}
        )

    return app


# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
