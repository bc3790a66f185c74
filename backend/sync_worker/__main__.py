"""Entry point for running the catalog sync RQ worker."""
from __future__ import annotations

import logging
import os

from rq import SimpleWorker, Worker

from ..sync_api.services.queue import JobQueueService
from ..sync_api.settings import SyncSettings


def main(burst: bool = False) -> None:
    """Start an RQ worker connected to the configured sync queue."""

    settings = SyncSettings()
    queue_service = JobQueueService(settings)

    # fork is unavailable on Windows
    worker_class = SimpleWorker if os.name == "nt" else Worker
    worker = worker_class(
        [queue_service.queue],
        connection=queue_service.connection,
        name=settings.queue_worker_name,
    )

    logging.basicConfig(level=logging.INFO)
    worker.work(burst=burst, with_scheduler=False)


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main(burst=os.environ.get("CATALOG_SYNC_WORKER_BURST", "").lower() in {"1", "true", "yes"})
