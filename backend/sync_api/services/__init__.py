"""Pipeline stages and integrations of the catalog sync service."""

from .idgen import IdentifierGenerator, derive_machine_id, parse_identifier
from .ingest import ListIngestionError, ListIngestor
from .pipeline import CatalogSyncPipeline, SyncAlreadyRunningError, SyncReport, SyncRunner
from .queue import JobQueueError, JobQueueService
from .rate_limiter import TokenBucket
from .remote import CatalogSourceClient, CategoryQuery, RemoteFetchError, default_category_queries

__all__ = [
    "CatalogSourceClient",
    "CatalogSyncPipeline",
    "CategoryQuery",
    "IdentifierGenerator",
    "JobQueueError",
    "JobQueueService",
    "ListIngestionError",
    "ListIngestor",
    "RemoteFetchError",
    "SyncAlreadyRunningError",
    "SyncReport",
    "SyncRunner",
    "TokenBucket",
    "default_category_queries",
    "derive_machine_id",
    "parse_identifier",
]
