"""Category list ingestion: creates stub videos for unseen items."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from rq.timeouts import BaseTimeoutException

from ...extractor import ExtractionError, ListItem
from ..schemas import VIDEO_TYPES, VideoCreate
from ..stores.video_store import VideoStore
from .idgen import IdentifierGenerator
from .remote import CatalogSourceClient, CategoryQuery, RemoteFetchError, default_category_queries

logger = logging.getLogger(__name__)


class ListIngestionError(RuntimeError):
    """Raised when not a single category list could be fetched."""


@dataclass(slots=True)
class IngestReport:
    fetched: int = 0
    created: int = 0
    existing: int = 0
    skipped: int = 0
    failed_categories: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "fetched": self.fetched,
            "created": self.created,
            "existing": self.existing,
            "skipped": self.skipped,
            "failed_categories": list(self.failed_categories),
        }


class ListIngestor:
    """Walk every category feed and insert videos not yet in the catalog."""

    def __init__(
        self,
        client: CatalogSourceClient,
        videos: VideoStore,
        ids: IdentifierGenerator,
        *,
        source: str = "douban",
        queries: Sequence[CategoryQuery] | None = None,
    ) -> None:
        self._client = client
        self._videos = videos
        self._ids = ids
        self._source = source
        self._queries = list(queries) if queries is not None else default_category_queries()

    def run(self) -> IngestReport:
        report = IngestReport()
        for query in self._queries:
            try:
                decoded = self._client.fetch_list(query)
            except (RemoteFetchError, ExtractionError) as exc:
                logger.error("Failed to fetch %s list: %s", query.name, exc)
                report.failed_categories.append(query.name)
                continue

            report.fetched += len(decoded.items)
            report.skipped += decoded.skipped
            for item in decoded.items:
                self._ingest_item(item, query, report)

        if self._queries and len(report.failed_categories) == len(self._queries):
            raise ListIngestionError(
                "No category list could be fetched: " + ", ".join(report.failed_categories)
            )

        logger.info(
            "List ingestion finished: %d fetched, %d created, %d existing, %d skipped",
            report.fetched,
            report.created,
            report.existing,
            report.skipped,
        )
        return report

    def _ingest_item(self, item: ListItem, query: CategoryQuery, report: IngestReport) -> None:
        video_type = query.fixed_type or item.type
        if video_type not in VIDEO_TYPES:
            logger.warning(
                "Skipping %s item %s with unsupported type %r", query.name, item.source_id, video_type
            )
            report.skipped += 1
            return

        try:
            if self._videos.find_by_natural_key(self._source, item.source_id) is not None:
                report.existing += 1
                return
        except BaseTimeoutException:
            raise
        except Exception:
            logger.exception("Lookup failed for %s/%s", self._source, item.source_id)
            report.skipped += 1
            return

        payload = VideoCreate(
            id=self._ids.next(),
            source=self._source,
            source_id=item.source_id,
            type=video_type,
            title=item.title,
            cover_url=item.cover_url,
            score=item.score,
        )
        try:
            created = self._videos.create(payload)
        except BaseTimeoutException:
            raise
        except Exception:
            logger.exception("Failed to store %s/%s", self._source, item.source_id)
            report.skipped += 1
            return

        if created is None:
            report.existing += 1
        else:
            report.created += 1
