"""Sync trigger endpoints."""
import logging

from fastapi import APIRouter, Body, Depends, HTTPException

from ..dependencies import get_job_log_store, get_job_queue, get_job_store, get_video_store
from ..schemas import JobModel, SyncRunRequest, SyncStatusModel
from ..services.queue import JobQueueError, JobQueueService
from ..services.tasks import SYNC_JOB_TYPE
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore
from ..stores.video_store import VideoStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/run", response_model=JobModel, status_code=202)
def run_sync(
    request: SyncRunRequest | None = Body(default=None),
    store: JobStore = Depends(get_job_store),
    log_store: JobLogStore = Depends(get_job_log_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobModel:
    """Queue a catalog sync unless one is already queued or running."""

    queue.recover_stale_jobs(store, log_store, SYNC_JOB_TYPE)
    active = store.find_active(SYNC_JOB_TYPE)
    if active is not None:
        raise HTTPException(
            status_code=409,
            detail={"message": "A sync job is already active", "job": active.model_dump(mode="json")},
        )

    payload = None
    if request is not None and request.stages:
        payload = {"stages": list(request.stages)}
    try:
        job = queue.enqueue(store, log_store, SYNC_JOB_TYPE, payload)
    except JobQueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    logger.info("Queued sync job %s", job.id)
    return job


@router.get("/status", response_model=SyncStatusModel)
def sync_status(
    store: JobStore = Depends(get_job_store),
    videos: VideoStore = Depends(get_video_store),
) -> SyncStatusModel:
    """Report the latest sync job alongside catalog counters."""

    return SyncStatusModel(
        running=store.find_active(SYNC_JOB_TYPE) is not None,
        last_job=store.latest(SYNC_JOB_TYPE),
        catalog=videos.metrics(),
    )
