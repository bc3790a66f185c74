"""Orchestration of the catalog sync stages."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Iterable, Sequence

from rq.timeouts import BaseTimeoutException
from sqlalchemy.engine import Engine

from ..metrics import observe_stage
from ..schemas import SYNC_STAGES
from ..settings import SyncSettings
from ..stores.episode_store import EpisodeStore
from ..stores.video_store import VideoStore
from .enrich import DetailEnricher
from .episodes import EpisodeMatcher
from .idgen import IdentifierGenerator
from .ingest import ListIngestionError, ListIngestor
from .rate_limiter import TokenBucket
from .reconcile import StatusReconciler
from .remote import CatalogSourceClient, CategoryQuery

logger = logging.getLogger(__name__)

# Movies first; series types follow the order their feeds are ingested in.
ENRICH_ORDER = ("movie", "tv", "anime", "tvshow", "doc")

StageCallback = Callable[["StageReport", int, int], None]


class SyncAlreadyRunningError(RuntimeError):
    """Raised when a sync is requested while another one is in progress."""


@dataclass(slots=True)
class StageReport:
    name: str
    status: str = "pending"
    detail: Any = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status, "detail": self.detail, "error": self.error}


@dataclass(slots=True)
class SyncReport:
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None
    stages: list[StageReport] = field(default_factory=list)

    @property
    def failed_stages(self) -> list[str]:
        return [stage.name for stage in self.stages if stage.status == "failed"]

    def as_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "stages": [stage.as_dict() for stage in self.stages],
        }


def normalize_stages(stages: Iterable[str] | None) -> list[str]:
    """Validate a stage selection and return it in canonical order."""

    if stages is None:
        return list(SYNC_STAGES)
    requested = set(stages)
    unknown = requested.difference(SYNC_STAGES)
    if unknown:
        raise ValueError(f"Unknown sync stages: {', '.join(sorted(unknown))}")
    return [stage for stage in SYNC_STAGES if stage in requested]


class CatalogSyncPipeline:
    """Runs ingest, enrich, match and reconcile strictly in sequence."""

    def __init__(
        self,
        *,
        ingestor: ListIngestor,
        enricher: DetailEnricher,
        matcher: EpisodeMatcher,
        reconciler: StatusReconciler,
    ) -> None:
        self.ingestor = ingestor
        self.enricher = enricher
        self.matcher = matcher
        self.reconciler = reconciler

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        engine: Engine,
        client: CatalogSourceClient,
        *,
        ids: IdentifierGenerator | None = None,
        queries: Sequence[CategoryQuery] | None = None,
    ) -> "CatalogSyncPipeline":
        videos = VideoStore(engine)
        episodes = EpisodeStore(engine)
        if ids is None:
            ids = IdentifierGenerator(settings.machine_id, epoch_ms=settings.id_epoch_ms)
        return cls(
            ingestor=ListIngestor(
                client, videos, ids, source=settings.source_name, queries=queries
            ),
            enricher=DetailEnricher(
                client,
                videos,
                batch_size=settings.enrichment_batch_size,
                limiter=TokenBucket.every(settings.detail_interval_seconds),
            ),
            matcher=EpisodeMatcher(
                client,
                videos,
                episodes,
                freshness_days=settings.freshness_days,
                limiter=TokenBucket.every(settings.search_interval_seconds),
            ),
            reconciler=StatusReconciler(videos),
        )

    def run(
        self,
        stages: Iterable[str] | None = None,
        *,
        on_stage: StageCallback | None = None,
    ) -> SyncReport:
        """Execute the selected stages.

        A failed list ingestion (:class:`ListIngestionError`) or an expired job
        time limit aborts the run and is re-raised. Any other stage failure is
        logged and recorded while the remaining stages still run.
        """

        selected = normalize_stages(stages)
        report = SyncReport()
        plan = self._plan(selected)
        logger.info("Catalog sync starting: %s", ", ".join(name for name, _ in plan))

        for index, (name, step) in enumerate(plan, start=1):
            stage = StageReport(name=name, status="running")
            report.stages.append(stage)
            try:
                stage.detail = step()
            except (ListIngestionError, BaseTimeoutException) as exc:
                stage.status = "failed"
                stage.error = str(exc)
                report.finished_at = datetime.utcnow()
                logger.error("Catalog sync aborted: %s", exc)
                observe_stage(name, stage.status)
                if on_stage is not None:
                    on_stage(stage, index, len(plan))
                raise
            except Exception as exc:
                stage.status = "failed"
                stage.error = str(exc)
                logger.exception("Stage %s failed", name)
            else:
                stage.status = "completed"
            observe_stage(name, stage.status, stage.detail)
            if on_stage is not None:
                on_stage(stage, index, len(plan))

        report.finished_at = datetime.utcnow()
        logger.info("Catalog sync finished; failed stages: %s", report.failed_stages or "none")
        return report

    def _plan(self, selected: list[str]) -> list[tuple[str, Callable[[], Any]]]:
        plan: list[tuple[str, Callable[[], Any]]] = []
        if "ingest" in selected:
            plan.append(("ingest", lambda: self.ingestor.run().as_dict()))
        if "enrich" in selected:
            for video_type in ENRICH_ORDER:
                plan.append(
                    (
                        f"enrich:{video_type}",
                        lambda video_type=video_type: self.enricher.run(video_type).as_dict(),
                    )
                )
        if "match" in selected:
            plan.append(("match", lambda: self.matcher.run().as_dict()))
        if "reconcile" in selected:
            plan.append(("reconcile", lambda: {"visible": self.reconciler.run()}))
        return plan


class SyncRunner:
    """In-process trigger guarding a pipeline with a non-blocking lock.

    Runners that share ``lock`` exclude each other, which lets a worker
    process build a fresh pipeline per job yet never run two at once.
    """

    def __init__(self, pipeline: CatalogSyncPipeline, *, lock: Lock | None = None) -> None:
        self._pipeline = pipeline
        self._lock = lock if lock is not None else Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run_sync(
        self,
        stages: Iterable[str] | None = None,
        *,
        on_stage: StageCallback | None = None,
    ) -> SyncReport:
        if not self._lock.acquire(blocking=False):
            raise SyncAlreadyRunningError("A catalog sync is already running")
        try:
            return self._pipeline.run(stages, on_stage=on_stage)
        finally:
            self._lock.release()
