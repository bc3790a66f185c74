"""Periodic sync scheduling.

Enqueues a ``sync`` job on a fixed interval using APScheduler. A tick is
skipped while another sync job is queued or running.
"""
from __future__ import annotations

import logging

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..sync_api.db import create_engine_from_settings, init_database
from ..sync_api.schemas import JobModel
from ..sync_api.services.queue import JobQueueService
from ..sync_api.services.tasks import SYNC_JOB_TYPE
from ..sync_api.settings import SyncSettings
from ..sync_api.stores.job_log_store import JobLogStore
from ..sync_api.stores.job_store import JobStore

logger = logging.getLogger(__name__)

SCHEDULE_JOB_ID = "catalog_sync"


class SyncSchedule:
    """Enqueue sync jobs on the configured cadence."""

    def __init__(self, settings: SyncSettings, queue: JobQueueService | None = None) -> None:
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        init_database(self.engine)
        self.job_store = JobStore(self.engine)
        self.log_store = JobLogStore(self.engine)
        self.queue = queue or JobQueueService(settings)

    def tick(self) -> JobModel | None:
        """Queue one sync job unless another is active."""

        self.queue.recover_stale_jobs(self.job_store, self.log_store, SYNC_JOB_TYPE)
        active = self.job_store.find_active(SYNC_JOB_TYPE)
        if active is not None:
            logger.info("Skipping scheduled sync; job %s is %s", active.id, active.status)
            return None
        job = self.queue.enqueue(self.job_store, self.log_store, SYNC_JOB_TYPE, None)
        self.log_store.record(job.id, "info", "Triggered by schedule")
        logger.info("Scheduled sync job %s queued", job.id)
        return job

    def install(self, scheduler: BaseScheduler) -> None:
        scheduler.add_job(
            self.tick,
            IntervalTrigger(hours=self.settings.sync_interval_hours),
            id=SCHEDULE_JOB_ID,
            name="Catalog sync",
            replace_existing=True,
        )
        scheduler.add_listener(_log_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    def close(self) -> None:
        self.engine.dispose()


def _log_job_event(event) -> None:
    if getattr(event, "exception", None) is not None:
        logger.error("Scheduled sync failed to enqueue: %s", event.exception)
    else:
        logger.warning("Scheduled sync run %s was missed", event.job_id)


def build_scheduler(settings: SyncSettings | None = None) -> tuple[BlockingScheduler, SyncSchedule]:
    """Create a blocking scheduler with the sync job installed."""

    schedule = SyncSchedule(settings or SyncSettings())
    scheduler = BlockingScheduler(
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60 * 15,
        }
    )
    schedule.install(scheduler)
    return scheduler, schedule
