"""Runtime configuration for the catalog sync service."""
from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schemas import VIDEO_TYPES
from .utils.paths import default_database_url

# Headroom for list ingestion, episode searches and the request timeouts.
JOB_TIMEOUT_MARGIN_SECONDS = 3600


class SyncSettings(BaseSettings):
    """Environment-aware settings for the sync API, worker and scheduler."""

    database_url: str = Field(
        default_factory=default_database_url,
        description="Connection URL for the catalog database.",
    )
    database_echo: bool = Field(
        default=False, description="Enable SQL echo for debugging queries."
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis-backed job queue.",
    )
    redis_queue_name: str = Field(
        default="catalog-sync",
        description="RQ queue name used for sync jobs.",
    )
    queue_worker_name: str = Field(
        default="sync-worker",
        description="Identifier used when reporting job worker executions.",
    )

    machine_id: int | None = Field(
        default=None,
        ge=0,
        le=1023,
        description="Shard identifier embedded in generated ids; derived from the host when unset.",
    )
    id_epoch_ms: int = Field(
        default=1704067200000,
        description="Epoch (milliseconds) subtracted from the clock before encoding ids.",
    )

    source_name: str = Field(
        default="douban", description="Natural-key namespace stored with every ingested video."
    )
    list_api_base: str = Field(
        default="https://m.douban.com/rexxar/api/v2/subject/recent_hot",
        description="Base URL of the category list API.",
    )
    list_limit: int | None = Field(
        default=None,
        ge=1,
        description="Override the per-category item limit of the list queries.",
    )
    list_origin: str = Field(
        default="https://movie.douban.com",
        description="Origin/referer host sent with list and detail requests.",
    )
    detail_url_template: str = Field(
        default="https://movie.douban.com/subject/{source_id}/",
        description="Detail document URL; ``{source_id}`` is substituted.",
    )
    search_url: str = Field(
        default="http://localhost:3000/api/search",
        description="Episode search endpoint queried with ``?q=<title>``.",
    )
    search_cookie: str | None = Field(
        default=None, description="Optional cookie header forwarded to the search endpoint."
    )
    search_verify_tls: bool = Field(
        default=True, description="Verify TLS certificates of the search endpoint."
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"
        ),
        description="User-Agent header sent with every outbound request.",
    )

    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request network timeout."
    )
    detail_interval_seconds: float = Field(
        default=4.0, ge=0, description="Minimum spacing between detail document fetches."
    )
    search_interval_seconds: float = Field(
        default=1.0, ge=0, description="Minimum spacing between episode searches."
    )
    enrichment_batch_size: int = Field(
        default=100, ge=1, description="Videos enriched per type in a single run."
    )
    freshness_days: int = Field(
        default=3, ge=0, description="A video is fresh when its newest episode is this recent."
    )
    sync_job_timeout_seconds: int | None = Field(
        default=None,
        ge=-1,
        description=(
            "RQ time limit for one sync job; -1 disables it. Unset derives it from the "
            "enrichment batch size and detail pacing plus a fixed margin."
        ),
    )
    sync_interval_hours: float = Field(
        default=8.0, gt=0, description="Cadence used by the bundled scheduler."
    )
    scheduler_run_on_start: bool = Field(
        default=False, description="Queue a sync as soon as the scheduler starts."
    )

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @field_validator("sync_job_timeout_seconds")
    @classmethod
    def _reject_zero_timeout(cls, value: int | None) -> int | None:
        if value == 0:
            raise ValueError("use -1 to disable the job timeout")
        return value

    def job_timeout_seconds(self) -> int:
        """Time limit passed to RQ for a sync job."""

        if self.sync_job_timeout_seconds is not None:
            return self.sync_job_timeout_seconds
        enrichment = self.enrichment_batch_size * self.detail_interval_seconds * len(VIDEO_TYPES)
        return int(enrichment) + JOB_TIMEOUT_MARGIN_SECONDS
