"""Application factory for the catalog sync API."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import health, ids, jobs, metrics, sync, videos
from .settings import SyncSettings
from .state import AppState

logger = logging.getLogger(__name__)


def create_app(settings: SyncSettings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""

    resolved_settings = settings or SyncSettings()
    app_state = AppState(settings=resolved_settings)

    app = FastAPI(title="Catalog Sync API", version="0.1.0")
    app.state.app_state = app_state
    app.state.settings = app_state.settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (
        health.router,
        sync.router,
        jobs.router,
        videos.router,
        ids.router,
        metrics.router,
    ):
        app.include_router(router)

    logger.debug("Catalog sync API ready (queue %s)", resolved_settings.redis_queue_name)
    return app
