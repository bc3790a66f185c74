"""Detail enrichment of stub videos."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rq.timeouts import BaseTimeoutException

from ...extractor import DetailFields, extract_detail
from ..schemas import VideoModel
from ..stores.video_store import VideoStore
from .rate_limiter import TokenBucket
from .remote import CatalogSourceClient

logger = logging.getLogger(__name__)

MOVIE_REFERER = (
    "https://movie.douban.com/explore?support_type=movie&is_all=false"
    "&category=%E8%B1%86%E7%93%A3%E9%AB%98%E5%88%86&type=%E5%85%A8%E9%83%A8"
)


@dataclass(slots=True)
class EnrichReport:
    video_type: str
    selected: int = 0
    updated: int = 0
    failed: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "type": self.video_type,
            "selected": self.selected,
            "updated": self.updated,
            "failed": len(self.failed),
        }


def apply_detail(video: VideoModel, fields: DetailFields) -> VideoModel:
    """Return ``video`` with every resolved detail field written over it.

    List fields covered by the type profile are always replaced (an empty
    array marks the row as enriched). Scalars only overwrite when present.
    """

    updates: dict[str, object] = {}
    for name in ("director_json", "actors_json", "tags_json", "country_json"):
        value = getattr(fields, name)
        if value is not None:
            updates[name] = value
    for name in ("score", "release_date", "runtime", "episode_count", "imdb_id", "description"):
        value = getattr(fields, name)
        if value is not None:
            updates[name] = value
    return video.model_copy(update=updates)


class DetailEnricher:
    """Fetch detail documents for unenriched videos of one type at a time."""

    def __init__(
        self,
        client: CatalogSourceClient,
        videos: VideoStore,
        *,
        batch_size: int = 100,
        limiter: TokenBucket | None = None,
    ) -> None:
        self._client = client
        self._videos = videos
        self._batch_size = batch_size
        self._limiter = limiter

    def run(self, video_type: str) -> EnrichReport:
        report = EnrichReport(video_type=video_type)
        batch = self._videos.find_needing_enrichment(video_type, self._batch_size)
        report.selected = len(batch)
        if not batch:
            logger.info("No %s videos awaiting enrichment", video_type)
            return report

        logger.info("Enriching %d %s videos", len(batch), video_type)
        referer = MOVIE_REFERER if video_type == "movie" else None
        for video in batch:
            if self._limiter is not None:
                self._limiter.acquire()
            try:
                document = self._client.fetch_detail(video.source_id, referer=referer)
                fields = extract_detail(document, video.type)
                self._videos.update(apply_detail(video, fields))
            except BaseTimeoutException:
                raise
            except Exception as exc:
                logger.warning("Enrichment failed for video %s (%s): %s", video.id, video.title, exc)
                report.failed.append(video.id)
                continue
            report.updated += 1
            logger.debug("Enriched video %s with %s", video.id, ", ".join(fields.resolved))

        return report
