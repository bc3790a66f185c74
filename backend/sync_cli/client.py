"""HTTP client helpers for the catalog sync CLI."""
from __future__ import annotations

import httpx

DEFAULT_TIMEOUT_SECONDS = 10.0


def create_client(
    base_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Instantiate an HTTPX client bound to the API base URL."""

    return httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
