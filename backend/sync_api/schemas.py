"""Pydantic models exposed by the catalog sync API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

VideoType = Literal["movie", "tv", "anime", "tvshow", "doc"]
VIDEO_TYPES: tuple[str, ...] = ("movie", "tv", "anime", "tvshow", "doc")
SERIES_TYPES: tuple[str, ...] = ("tv", "anime", "tvshow", "doc")

VideoStatus = Literal["visible", "hidden"]
STATUS_VISIBLE = "visible"
STATUS_HIDDEN = "hidden"

SyncStage = Literal["ingest", "enrich", "match", "reconcile"]
SYNC_STAGES: tuple[str, ...] = ("ingest", "enrich", "match", "reconcile")

JobStatus = Literal["queued", "running", "completed", "failed"]
ACTIVE_JOB_STATUSES: tuple[str, ...] = ("queued", "running")


class QueueHealthStatus(BaseModel):
    """Represents Redis queue connectivity status."""

    status: Literal["ok", "error"] = Field(default="ok")
    detail: str | None = Field(
        default=None, description="Optional diagnostic message when the queue is unavailable."
    )


class HealthStatus(BaseModel):
    """Service health payload."""

    status: Literal["ok"] = Field(default="ok")
    version: str = Field(default="0.1.0", description="Semantic version of the API service.")
    queue: QueueHealthStatus = Field(
        default_factory=QueueHealthStatus,
        description="Health information for the background job queue.",
    )


class VideoModel(BaseModel):
    """Full catalog row as read from and written back to the store."""

    id: int
    source: str
    source_id: int
    type: VideoType
    title: str = ""
    cover_url: str = ""
    description: str | None = None
    runtime: int | None = None
    imdb_id: str | None = None
    release_date: date | None = None
    country_json: str | None = None
    director_json: str | None = None
    actors_json: str | None = None
    tags_json: str | None = None
    score: float | None = Field(default=None, ge=0, le=10)
    episode_count: int | None = None
    status: VideoStatus | None = None
    is_completed: bool = False
    is_fresh: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VideoCreate(BaseModel):
    """Stub fields known at list-ingestion time."""

    id: int
    source: str
    source_id: int
    type: VideoType
    title: str = ""
    cover_url: str = ""
    score: float | None = Field(default=None, ge=0, le=10)


class VideoListModel(BaseModel):
    """Paginated list container for catalog responses."""

    items: list[VideoModel]
    total: int
    page: int
    page_size: int


class VideoMetricsModel(BaseModel):
    """Aggregate statistics for catalog insights."""

    total: int = Field(description="Total number of videos in the catalog.")
    type_counts: dict[str, int] = Field(
        default_factory=dict, description="Breakdown of videos per type."
    )
    status_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Breakdown of videos per status; pending videos are counted under 'pending'.",
    )
    pending_enrichment: int = Field(
        default=0, description="Videos still missing both release date and country data."
    )
    completed: int = Field(default=0, description="Videos whose episode list is complete.")
    fresh: int = Field(default=0, description="Videos with recently added episodes.")
    episodes: int = Field(default=0, description="Total number of stored episodes.")


class EpisodeModel(BaseModel):
    """Stored episode row."""

    id: int
    video_id: int
    episode_number: int
    channel: str = ""
    channel_id: int | None = None
    name: str = ""
    play_urls: str
    duration_seconds: int | None = None
    subtitle_urls: str | None = None
    created_at: datetime
    updated_at: datetime


class EpisodeCreate(BaseModel):
    """Episode values supplied by the matcher when appending."""

    episode_number: int = Field(ge=1)
    play_urls: str = Field(max_length=255)
    channel: str = ""
    name: str = ""


class IdentifierModel(BaseModel):
    """Decoded components of a generated identifier."""

    id: int
    timestamp_ms: int
    issued_at: datetime
    shard: int
    sequence: int


class JobModel(BaseModel):
    """Represents a sync pipeline job."""

    id: str
    type: str
    status: JobStatus
    progress: float = Field(ge=0, le=1)
    worker_id: str | None = Field(
        default=None, description="Identifier for the worker processing the job."
    )
    payload: dict[str, Any] | None = Field(
        default=None, description="Optional JSON payload forwarded to the runner."
    )
    result: dict[str, Any] | None = Field(
        default=None, description="Stage report recorded when the job finished."
    )
    created_at: datetime = Field(
        description="Timestamp when the job record was created."
    )
    updated_at: datetime = Field(
        description="Timestamp when the job record was last updated."
    )
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None
    duration_seconds: float | None = Field(
        default=None,
        description="Execution duration calculated from started and finished timestamps.",
    )


class JobMetricsModel(BaseModel):
    """Aggregate statistics for background job processing."""

    total: int = Field(description="Total number of job records persisted in the store.")
    status_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by current status.",
    )
    type_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Count of jobs grouped by job type identifier.",
    )
    average_duration_seconds: float | None = Field(
        default=None,
        description="Average duration in seconds for jobs with both start and finish timestamps.",
    )
    last_finished_at: datetime | None = Field(
        default=None,
        description="Timestamp of the most recently finished job regardless of outcome.",
    )
    queue_depth: int = Field(
        default=0,
        description="Number of jobs currently waiting in the Redis queue.",
    )


class JobLogCreate(BaseModel):
    """Payload used to append a new job log entry."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", description="Severity level of the log entry."
    )
    message: str = Field(..., description="Human-readable log message.")
    context: dict[str, Any] | None = Field(
        default=None,
        description="Optional structured context payload for the log entry.",
    )


class JobLogModel(JobLogCreate):
    """Represents a persisted job log entry."""

    id: int
    job_id: str
    created_at: datetime


class SyncRunRequest(BaseModel):
    """Payload accepted when triggering a sync run."""

    stages: list[SyncStage] | None = Field(
        default=None,
        description="Optional subset of stages to run; canonical order is always kept.",
    )


class SyncStatusModel(BaseModel):
    """Latest sync job alongside catalog metrics."""

    running: bool = Field(description="Whether a sync job is queued or running.")
    last_job: JobModel | None = None
    catalog: VideoMetricsModel
