"""Shared state container for the catalog sync API."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from .db import create_engine_from_settings, init_database
from .services.queue import JobQueueService
from .settings import SyncSettings
from .stores.episode_store import EpisodeStore
from .stores.job_log_store import JobLogStore
from .stores.job_store import JobStore
from .stores.video_store import VideoStore


@dataclass(slots=True)
class AppState:
    """Engine, stores and queue shared across routers."""

    settings: SyncSettings
    engine: Engine
    job_store: JobStore
    job_log_store: JobLogStore
    video_store: VideoStore
    episode_store: EpisodeStore
    job_queue: JobQueueService

    def __init__(self, settings: SyncSettings) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine)
        self.job_store = JobStore(self.engine)
        self.job_log_store = JobLogStore(self.engine)
        self.video_store = VideoStore(self.engine)
        self.episode_store = EpisodeStore(self.engine)
        self.job_queue = JobQueueService(settings)
