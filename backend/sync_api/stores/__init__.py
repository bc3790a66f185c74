"""Persistence accessors for catalog and job records."""

from .episode_store import EpisodeStore
from .job_log_store import JobLogStore
from .job_store import JobStore
from .video_store import VideoStore

__all__ = ["EpisodeStore", "JobLogStore", "JobStore", "VideoStore"]
