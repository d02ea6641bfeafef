"""FastAPI application factory."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    ArtGuardError,
    DecodeError,
    FetchCancelled,
    FetchError,
    FetchHttpError,
    FetchTimeout,
    FetchTooLarge,
    InvalidUrl,
    UploadTooLarge,
)
from ..db import init_db
from ..db.schemas import ErrorResponse
from ..version import __version__
from .routers import artworks

logger = logging.getLogger(__name__)


def status_for_error(exc: ArtGuardError) -> int:
    """Map a pipeline failure to an HTTP status code."""
    if isinstance(exc, (InvalidUrl, DecodeError)):
        return 400
    if isinstance(exc, (FetchTooLarge, UploadTooLarge)):
        return 413
    if isinstance(exc, FetchCancelled):
        return 408
    if isinstance(exc, FetchTimeout):
        return 504
    if isinstance(exc, FetchError):
        return 502
    return 500


def create_app(init_database: bool = True) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="artguard API",
        description="Duplicate and near-duplicate guard for artwork uploads",
        version=__version__,
    )

    if init_database:

        @app.on_event("startup")
        async def startup_event() -> None:
            logger.info("Starting artguard API...")
            init_db()
            logger.info("Database initialized")

    @app.exception_handler(ArtGuardError)
    async def artguard_error_handler(request: Request, exc: ArtGuardError) -> JSONResponse:
        status_code = status_for_error(exc)
        if status_code >= 500 and not isinstance(exc, FetchError):
            logger.error(f"Upload failed: {exc.kind}: {exc.message}")
        else:
            logger.warning(f"Upload rejected: {exc.kind}: {exc.message}")

        body = ErrorResponse(
            error=exc.kind,
            message=exc.message,
            status_code=exc.status_code if isinstance(exc, FetchHttpError) else None,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    app.include_router(artworks.router, prefix="/api/artworks", tags=["artworks"])

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app
