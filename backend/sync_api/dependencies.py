"""FastAPI dependencies for the catalog sync API."""
from fastapi import Depends, Request

from .services.queue import JobQueueService
from .settings import SyncSettings
from .state import AppState
from .stores.episode_store import EpisodeStore
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.video_store import VideoStore


def get_app_state(request: Request) -> AppState:
    """Resolve the shared application state from the FastAPI request."""
    return request.app.state.app_state


def get_settings(app_state: AppState = Depends(get_app_state)) -> SyncSettings:
    return app_state.settings


def get_job_store(app_state: AppState = Depends(get_app_state)) -> JobStore:
    return app_state.job_store


def get_job_log_store(app_state: AppState = Depends(get_app_state)) -> JobLogStore:
    return app_state.job_log_store


def get_job_queue(app_state: AppState = Depends(get_app_state)) -> JobQueueService:
    return app_state.job_queue


def get_video_store(app_state: AppState = Depends(get_app_state)) -> VideoStore:
    return app_state.video_store


def get_episode_store(app_state: AppState = Depends(get_app_state)) -> EpisodeStore:
    return app_state.episode_store
