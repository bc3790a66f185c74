"""Router exports for the catalog sync API."""
from . import health, ids, jobs, metrics, sync, videos

__all__ = ["health", "ids", "jobs", "metrics", "sync", "videos"]
