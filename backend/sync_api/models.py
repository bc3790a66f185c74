"""Database models for the catalog sync service."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Column, ForeignKey, String, UniqueConstraint
from sqlmodel import Field, SQLModel

VIDEO_JSON_MAX_BYTES = 512
PLAY_URL_MAX_CHARS = 255


class VideoRecord(SQLModel, table=True):
    """Catalog entry keyed by a generator-issued id and a ``(source, source_id)`` natural key."""

    __tablename__ = "videos"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_videos_source_source_id"),
    )

    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    source: str = Field(index=True)
    source_id: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))
    type: str = Field(index=True)
    title: str = Field(default="", index=True)
    cover_url: str = Field(default="")
    description: str | None = Field(default=None)
    runtime: int | None = Field(default=None)
    imdb_id: str | None = Field(default=None, max_length=20)
    release_date: date | None = Field(default=None, index=True)
    country_json: str | None = Field(
        default=None, sa_column=Column(String(VIDEO_JSON_MAX_BYTES), nullable=True)
    )
    director_json: str | None = Field(
        default=None, sa_column=Column(String(VIDEO_JSON_MAX_BYTES), nullable=True)
    )
    actors_json: str | None = Field(
        default=None, sa_column=Column(String(VIDEO_JSON_MAX_BYTES), nullable=True)
    )
    tags_json: str | None = Field(
        default=None, sa_column=Column(String(VIDEO_JSON_MAX_BYTES), nullable=True)
    )
    score: float | None = Field(default=None)
    episode_count: int | None = Field(default=None)
    status: str | None = Field(default=None, index=True)
    is_completed: bool = Field(default=False)
    is_fresh: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class EpisodeRecord(SQLModel, table=True):
    """Playable episode appended to a video by the episode matcher."""

    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("video_id", "episode_number", name="uq_episodes_video_number"),
    )

    id: int | None = Field(default=None, primary_key=True)
    video_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("videos.id"), nullable=False, index=True)
    )
    episode_number: int = Field(default=1)
    channel: str = Field(default="")
    channel_id: int | None = Field(default=None)
    name: str = Field(default="")
    play_urls: str = Field(sa_column=Column(String(PLAY_URL_MAX_CHARS), nullable=False))
    duration_seconds: int | None = Field(default=None)
    subtitle_urls: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class JobRecord(SQLModel, table=True):
    """Background job metadata persisted for orchestration."""

    __tablename__ = "sync_jobs"

    id: str = Field(primary_key=True, index=True)
    type: str = Field(index=True)
    status: str = Field(default="queued", index=True)
    progress: float = Field(default=0.0)
    worker_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    started_at: datetime | None = Field(default=None, index=True)
    finished_at: datetime | None = Field(default=None, index=True)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class JobLogRecord(SQLModel, table=True):
    """Structured log event associated with a sync job."""

    __tablename__ = "sync_job_logs"

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(index=True)
    level: str = Field(default="info", index=True)
    message: str
    context: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
