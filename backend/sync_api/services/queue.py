"""Redis-backed job queue integration for catalog sync jobs."""
from __future__ import annotations

import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError
from rq import Callback, Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus

from ..metrics import job_failures_counter
from ..schemas import ACTIVE_JOB_STATUSES, JobModel
from ..settings import SyncSettings
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from .tasks import SYNC_JOB_TYPE, execute_sync_job, handle_job_failure

logger = logging.getLogger(__name__)

# RQ states in which a worker will still pick up or finish the job.
LIVE_RQ_STATUSES = frozenset(
    {JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED}
)


class JobQueueError(RuntimeError):
    """Raised when the queue cannot accept a job."""


class JobQueueService:
    """Owns the Redis connection and the enqueue workflow."""

    def __init__(self, settings: SyncSettings) -> None:
        self._settings = settings
        self._connection = self._create_connection(settings)
        self._queue = Queue(settings.redis_queue_name, connection=self._connection)

    @staticmethod
    def _create_connection(settings: SyncSettings) -> Redis:
        """Open the Redis connection; ``fakeredis://`` selects a private in-memory server."""

        url = settings.redis_url
        if url.startswith("fakeredis://"):
            import fakeredis

            return fakeredis.FakeRedis(server=fakeredis.FakeServer())
        return Redis.from_url(url)

    @property
    def queue(self) -> Queue:
        return self._queue

    @property
    def connection(self) -> Redis:
        return self._connection

    def ping(self) -> bool:
        try:
            return bool(self._connection.ping())
        except RedisError:
            return False

    def depth(self) -> int:
        try:
            return self._queue.count
        except RedisError:
            return 0

    def enqueue(
        self,
        job_store: JobStore,
        log_store: JobLogStore,
        job_type: str = SYNC_JOB_TYPE,
        payload: dict[str, Any] | None = None,
    ) -> JobModel:
        """Persist a job and hand it to the worker queue."""

        job = job_store.enqueue(job_type, payload)
        log_store.record(
            job.id,
            "info",
            f"Job {job_type} enqueued",
            **({"payload": payload} if payload else {}),
        )

        try:
            self._queue.enqueue(
                execute_sync_job,
                job_id=job.id,
                job_timeout=self._settings.job_timeout_seconds(),
                on_failure=Callback(handle_job_failure),
                kwargs={
                    "job_id": job.id,
                    "job_type": job_type,
                    "payload": payload,
                    "settings": self._settings.model_dump(),
                    "worker_name": self._settings.queue_worker_name,
                },
            )
        except RedisError as exc:
            log_store.record(job.id, "error", "Failed to enqueue job", error=str(exc))
            job_store.mark_failed(job.id, error_message="queue_unavailable", progress=0.0)
            raise JobQueueError("Unable to enqueue job") from exc

        return job

    def recover_stale_jobs(
        self,
        job_store: JobStore,
        log_store: JobLogStore,
        job_type: str = SYNC_JOB_TYPE,
    ) -> list[str]:
        """Fail queued or running records whose RQ job is gone or already ended.

        Expired entries of the started registry are moved to the failed
        registry first, so a worker that died mid-job is noticed once the job
        time limit has passed. Returns the identifiers of recovered records.
        """

        try:
            self._queue.started_job_registry.cleanup()
        except RedisError as exc:
            logger.warning("Skipping stale job recovery; queue unavailable: %s", exc)
            return []

        recovered: list[str] = []
        for job in job_store.list(limit=50, statuses=list(ACTIVE_JOB_STATUSES), job_type=job_type):
            try:
                status = Job.fetch(job.id, connection=self._connection).get_status()
            except NoSuchJobError:
                status = None
            except RedisError as exc:
                logger.warning("Stopping stale job recovery at %s: %s", job.id, exc)
                break
            if status in LIVE_RQ_STATUSES:
                continue

            status = getattr(status, "value", status)
            reason = f"worker_lost ({status})" if status else "worker_lost"
            job_store.mark_failed(job.id, error_message=reason)
            log_store.record(job.id, "error", "Job recovered as failed", rq_status=status)
            job_failures_counter.labels(reason="stale").inc()
            logger.warning("Recovered stale job %s (rq status %s)", job.id, status)
            recovered.append(job.id)
        return recovered
