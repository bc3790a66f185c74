"""Prometheus scrape endpoint."""
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..dependencies import get_job_queue, get_job_store, get_video_store
from ..metrics import refresh_catalog_gauges
from ..services.queue import JobQueueService
from ..stores.job_store import JobStore
from ..stores.video_store import VideoStore

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
def get_metrics(
    jobs: JobStore = Depends(get_job_store),
    videos: VideoStore = Depends(get_video_store),
    queue: JobQueueService = Depends(get_job_queue),
) -> Response:
    refresh_catalog_gauges(videos.metrics(), jobs.metrics(), queue.depth())
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
