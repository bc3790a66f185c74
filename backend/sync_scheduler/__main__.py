"""Entry point for running the periodic sync scheduler."""
from __future__ import annotations

import logging

from . import build_scheduler


def main() -> None:
    """Block and enqueue a sync job every ``sync_interval_hours``."""

    logging.basicConfig(level=logging.INFO)
    scheduler, schedule = build_scheduler()
    if schedule.settings.scheduler_run_on_start:
        schedule.tick()
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger(__name__).info("Scheduler stopped")
    finally:
        schedule.close()


if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()
