"""
FastAPI application entry point.

Uses an application factory (create_app) so tests can build apps with
their own settings and collaborators.

For local development:
    uvicorn nvr_backup.api.app:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..config.settings import get_settings
from ..logging_setup import setup_logging
from .dependencies import RunCoordinator
from .routes import health, runs


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    log = app.state.logger

    log.info(
        "NVR backup service starting",
        extra={
            "version": __version__,
            "mock_mode": {"nvr": settings.nvr_mock_mode, "store": settings.store_mock_mode},
        },
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        log.error("Missing required configuration: %s", ", ".join(missing_fields))

    yield

    log.info("NVR backup service shutting down")


def create_app(coordinator: RunCoordinator | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="NVR Backup",
        version=__version__,
        description="Incremental backup of NVR video clips to cloud object storage.",
        lifespan=lifespan,
    )
    app.state.logger = setup_logging(settings.log_level)
    app.state.coordinator = coordinator or RunCoordinator()

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(runs.router, prefix="/runs", tags=["Runs"])

    return app


app = create_app()
