"""RQ worker for catalog sync jobs."""
