"""Prometheus instruments for catalog sync runs.

Counters are incremented by the pipeline and the worker entrypoints; the
gauges are refreshed from the stores whenever ``/metrics`` is scraped.
"""
from __future__ import annotations

from typing import Any

from prometheus_client import Counter, Gauge

from .schemas import JobMetricsModel, VideoMetricsModel

stage_runs_counter = Counter(
    "catalog_sync_stage_runs",
    "Sync stage executions by outcome",
    labelnames=["stage", "status"],
)
videos_ingested_counter = Counter(
    "catalog_sync_videos_ingested",
    "Listing items seen during ingestion",
    labelnames=["outcome"],
)
videos_enriched_counter = Counter(
    "catalog_sync_videos_enriched",
    "Videos updated from their detail page",
    labelnames=["type"],
)
enrich_failures_counter = Counter(
    "catalog_sync_enrich_failures",
    "Detail pages that could not be fetched or stored",
    labelnames=["type"],
)
episodes_appended_counter = Counter(
    "catalog_sync_episodes_appended",
    "Episode rows appended by the match stage",
)
match_failures_counter = Counter(
    "catalog_sync_match_failures",
    "Videos whose episode search failed",
)
job_failures_counter = Counter(
    "catalog_sync_job_failures",
    "Sync jobs that ended without completing",
    labelnames=["reason"],
)

videos_gauge = Gauge("catalog_videos", "Videos in the catalog by type", labelnames=["type"])
videos_by_status_gauge = Gauge(
    "catalog_videos_by_status", "Videos in the catalog by status", labelnames=["status"]
)
episodes_gauge = Gauge("catalog_episodes", "Episode rows in the catalog")
pending_enrichment_gauge = Gauge(
    "catalog_pending_enrichment", "Videos still waiting for their detail page"
)
jobs_gauge = Gauge("catalog_sync_jobs", "Sync jobs by status", labelnames=["status"])
queue_depth_gauge = Gauge("catalog_sync_queue_depth", "Jobs waiting in the worker queue")


def _count(detail: dict[str, Any], key: str) -> int:
    value = detail.get(key)
    return value if isinstance(value, int) else 0


def observe_stage(name: str, status: str, detail: Any = None) -> None:
    """Record one finished stage and the counts from its report."""

    stage = name.split(":", 1)[0]
    stage_runs_counter.labels(stage=stage, status=status).inc()
    if not isinstance(detail, dict):
        return

    if stage == "ingest":
        for outcome in ("created", "existing", "skipped"):
            videos_ingested_counter.labels(outcome=outcome).inc(_count(detail, outcome))
    elif stage == "enrich":
        video_type = str(detail.get("type") or name.partition(":")[2])
        videos_enriched_counter.labels(type=video_type).inc(_count(detail, "updated"))
        enrich_failures_counter.labels(type=video_type).inc(_count(detail, "failed"))
    elif stage == "match":
        episodes_appended_counter.inc(_count(detail, "episodes_added"))
        match_failures_counter.inc(_count(detail, "failed"))


def refresh_catalog_gauges(
    videos: VideoMetricsModel, jobs: JobMetricsModel, queue_depth: int | None = None
) -> None:
    """Overwrite the catalog gauges with the current store aggregates."""

    for gauge in (videos_gauge, videos_by_status_gauge, jobs_gauge):
        gauge.clear()
    for video_type, count in videos.type_counts.items():
        videos_gauge.labels(type=video_type).set(count)
    for status, count in videos.status_counts.items():
        videos_by_status_gauge.labels(status=status).set(count)
    episodes_gauge.set(videos.episodes)
    pending_enrichment_gauge.set(videos.pending_enrichment)
    for status, count in jobs.status_counts.items():
        jobs_gauge.labels(status=status).set(count)
    queue_depth_gauge.set(jobs.queue_depth if queue_depth is None else queue_depth)
