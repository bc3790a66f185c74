"""RQ task entrypoints executed by background workers."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from rq import get_current_job
from rq.timeouts import BaseTimeoutException

from ..db import create_engine_from_settings, init_database
from ..metrics import job_failures_counter
from ..schemas import ACTIVE_JOB_STATUSES
from ..settings import SyncSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from .idgen import IdentifierGenerator
from .ingest import ListIngestionError
from .pipeline import CatalogSyncPipeline, StageReport, SyncAlreadyRunningError, SyncRunner
from .remote import CatalogSourceClient

logger = logging.getLogger(__name__)

SYNC_JOB_TYPE = "sync"

_WORKER_SYNC_LOCK = Lock()
_WORKER_ID_LOCK = Lock()
_WORKER_ID_GENERATORS: dict[tuple[int | None, int], IdentifierGenerator] = {}


def create_source_client(settings: SyncSettings) -> CatalogSourceClient:
    """Build the HTTP client used by a sync job."""

    return CatalogSourceClient(settings)


def worker_identifier_generator(settings: SyncSettings) -> IdentifierGenerator:
    """Return the process-wide id generator for the configured shard and epoch."""

    key = (settings.machine_id, settings.id_epoch_ms)
    with _WORKER_ID_LOCK:
        generator = _WORKER_ID_GENERATORS.get(key)
        if generator is None:
            generator = IdentifierGenerator(settings.machine_id, epoch_ms=settings.id_epoch_ms)
            _WORKER_ID_GENERATORS[key] = generator
        return generator


def execute_sync_job(
    *,
    job_id: str,
    job_type: str,
    payload: dict[str, Any] | None,
    settings: dict[str, Any],
    worker_name: str,
) -> dict[str, Any] | None:
    """Background worker entrypoint for sync jobs."""

    resolved_settings = SyncSettings.model_validate(settings)
    engine = create_engine_from_settings(resolved_settings)
    init_database(engine)
    job_store = JobStore(engine)
    log_store = JobLogStore(engine)

    current_job = get_current_job()
    worker_id = worker_name
    if current_job and getattr(current_job, "worker_name", None):  # pragma: no cover - runtime path
        worker_id = current_job.worker_name  # type: ignore[assignment]

    job_store.mark_running(job_id, worker_id=worker_id)
    log_store.record(job_id, "info", "Job started")

    try:
        if job_type != SYNC_JOB_TYPE:
            message = f"Unknown job type: {job_type}"
            log_store.record(job_id, "error", message)
            job_store.mark_failed(job_id, error_message=message, progress=0.0)
            return None

        stages = (payload or {}).get("stages")
        report = _run_pipeline(job_id, stages, resolved_settings, engine, job_store, log_store)
        result = report.as_dict()
        job_store.mark_completed(job_id, progress=1.0, result=result)
        log_store.record(
            job_id,
            "warning" if report.failed_stages else "info",
            "Job completed",
            failed_stages=report.failed_stages,
        )
        return result
    except SyncAlreadyRunningError as exc:
        job_store.mark_failed(job_id, error_message=str(exc), progress=0.0)
        log_store.record(job_id, "warning", "Job skipped", error=str(exc))
        job_failures_counter.labels(reason="overlap").inc()
        return None
    except BaseTimeoutException as exc:
        message = f"Job exceeded its time limit: {exc}"
        job_store.mark_failed(job_id, error_message=message)
        log_store.record(job_id, "error", "Job timed out", error=str(exc))
        job_failures_counter.labels(reason="timeout").inc()
        raise
    except Exception as exc:
        job_store.mark_failed(job_id, error_message=str(exc))
        log_store.record(job_id, "error", "Job failed", error=str(exc))
        job_failures_counter.labels(reason="error").inc()
        raise
    finally:
        engine.dispose()


def handle_job_failure(job, connection, exc_type, exc_value, traceback) -> None:
    """RQ failure callback: close out a job record the entrypoint left active.

    Covers failures raised outside :func:`execute_sync_job`'s own handlers,
    such as a time limit hit while the record was being written.
    """

    kwargs = job.kwargs or {}
    settings = kwargs.get("settings")
    if settings is None:
        return
    engine = create_engine_from_settings(SyncSettings.model_validate(settings))
    try:
        job_store = JobStore(engine)
        record = job_store.get(job.id)
        if record is None or record.status not in ACTIVE_JOB_STATUSES:
            return
        error = str(exc_value) if exc_value is not None else getattr(exc_type, "__name__", "error")
        job_store.mark_failed(job.id, error_message=error)
        JobLogStore(engine).record(job.id, "error", "Job failed in worker", error=error)
        job_failures_counter.labels(reason="worker").inc()
        logger.error("Job %s failed in worker: %s", job.id, error)
    finally:
        engine.dispose()


def _run_pipeline(
    job_id: str,
    stages: list[str] | None,
    settings: SyncSettings,
    engine,
    job_store: JobStore,
    log_store: JobLogStore,
):
    def on_stage(stage: StageReport, index: int, total: int) -> None:
        job_store.update_progress(job_id, round(index / total, 4) if total else 1.0)
        if stage.status == "failed":
            log_store.record(job_id, "error", f"Stage {stage.name} failed", error=stage.error)
        else:
            log_store.record(
                job_id,
                "info",
                f"Stage {stage.name} completed",
                **({"detail": stage.detail} if stage.detail is not None else {}),
            )

    client = create_source_client(settings)
    try:
        pipeline = CatalogSyncPipeline.from_settings(
            settings, engine, client, ids=worker_identifier_generator(settings)
        )
        runner = SyncRunner(pipeline, lock=_WORKER_SYNC_LOCK)
        return runner.run_sync(stages, on_stage=on_stage)
    except ListIngestionError:
        logger.error("Sync job %s aborted: no category list was fetched", job_id)
        raise
    finally:
        client.close()
