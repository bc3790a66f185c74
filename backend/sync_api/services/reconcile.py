"""Final visibility pass over the catalog."""
from __future__ import annotations

import logging

from ..stores.video_store import VideoStore

logger = logging.getLogger(__name__)


class StatusReconciler:
    """Marks every video that owns episodes as visible. Idempotent."""

    def __init__(self, videos: VideoStore) -> None:
        self._videos = videos

    def run(self) -> int:
        changed = self._videos.mark_visible_with_episodes()
        logger.info("Status reconciliation marked %d videos visible", changed)
        return changed
