"""Job inspection endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_job_log_store, get_job_queue, get_job_store
from ..schemas import JobLogModel, JobMetricsModel, JobModel
from ..services.queue import JobQueueService
from ..stores.job_log_store import JobLogStore
from ..stores.job_store import JobStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobModel])
def list_jobs(
    limit: int = Query(default=50, ge=1, le=100),
    statuses: Annotated[
        list[str] | None,
        Query(
            alias="status",
            description="Filter by job status. Repeat the parameter to include several.",
        ),
    ] = None,
    job_type: str | None = Query(default=None, alias="type"),
    store: JobStore = Depends(get_job_store),
) -> list[JobModel]:
    """Return the most recent jobs up to the requested limit."""

    return store.list(limit=limit, statuses=statuses, job_type=job_type)


@router.get("/metrics", response_model=JobMetricsModel)
def job_metrics(
    store: JobStore = Depends(get_job_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> JobMetricsModel:
    """Return aggregate job telemetry combined with queue depth."""

    return store.metrics().model_copy(update={"queue_depth": queue.depth()})


@router.get("/{job_id}", response_model=JobModel)
def get_job(job_id: str, store: JobStore = Depends(get_job_store)) -> JobModel:
    job = store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.get("/{job_id}/logs", response_model=list[JobLogModel])
def list_job_logs(
    job_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    store: JobStore = Depends(get_job_store),
    log_store: JobLogStore = Depends(get_job_log_store),
) -> list[JobLogModel]:
    """Return log events recorded while a job ran."""

    if store.get(job_id) is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return log_store.list_for_job(job_id, limit=limit)
