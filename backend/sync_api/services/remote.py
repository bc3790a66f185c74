"""HTTP access to the list, detail and episode-search sources."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from ...extractor import ListDecodeResult, SearchResult, decode_list, decode_search
from ..settings import SyncSettings

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "accept-language": "zh-CN,zh;q=0.9,en;q=0.8",
    "cache-control": "no-cache",
    "dnt": "1",
    "pragma": "no-cache",
    "sec-ch-ua": '"Chromium";v="142", "Google Chrome";v="142", "Not_A Brand";v="99"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"macOS"',
}

JSON_ACCEPT = "application/json, text/plain, */*"
DOCUMENT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
    "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
)


class RemoteFetchError(RuntimeError):
    """Raised when a remote source cannot be reached or answers with an error."""


@dataclass(frozen=True, slots=True)
class CategoryQuery:
    """One category feed of the list API.

    ``fixed_type`` overrides the type carried by each item; feeds that mix
    movies and series leave it unset.
    """

    name: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    limit: int = 100
    referer: str = "https://movie.douban.com/tv/"
    fixed_type: str | None = None


def default_category_queries() -> list[CategoryQuery]:
    return [
        CategoryQuery(
            name="movie",
            path="movie",
            params={"category": "最新", "type": "全部"},
            limit=100,
            referer="https://movie.douban.com/explore",
        ),
        CategoryQuery(name="tv", path="tv", params={"category": "tv", "type": "tv"}, limit=100),
        CategoryQuery(
            name="anime",
            path="tv",
            params={"category": "tv", "type": "tv_animation"},
            limit=200,
            fixed_type="anime",
        ),
        CategoryQuery(
            name="doc",
            path="tv",
            params={"category": "tv", "type": "tv_documentary"},
            limit=200,
            fixed_type="doc",
        ),
        CategoryQuery(
            name="tvshow",
            path="tv",
            params={"category": "show", "type": "show"},
            limit=200,
            fixed_type="tvshow",
        ),
    ]


class CatalogSourceClient:
    """Thin wrapper over one ``httpx.Client`` shared by every pipeline stage."""

    def __init__(
        self,
        settings: SyncSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.Client(
            timeout=settings.request_timeout_seconds,
            headers={**BROWSER_HEADERS, "user-agent": settings.user_agent},
            follow_redirects=True,
            transport=transport,
        )
        self._search_client = httpx.Client(
            timeout=settings.request_timeout_seconds,
            headers={"user-agent": settings.user_agent, "accept": JSON_ACCEPT},
            verify=settings.search_verify_tls,
            transport=transport,
        )

    def __enter__(self) -> "CatalogSourceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()
        self._search_client.close()

    def _get(self, client: httpx.Client, url: str, **kwargs) -> httpx.Response:
        try:
            response = client.get(url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteFetchError(f"GET {url} failed: {exc}") from exc
        return response

    def fetch_list(self, query: CategoryQuery) -> ListDecodeResult:
        """Fetch and decode one category feed."""

        params = {
            "start": "0",
            "limit": str(self._settings.list_limit or query.limit),
            **query.params,
        }
        url = f"{self._settings.list_api_base.rstrip('/')}/{query.path}"
        response = self._get(
            self._client,
            url,
            params=params,
            headers={
                "accept": JSON_ACCEPT,
                "origin": self._settings.list_origin,
                "referer": query.referer,
                "sec-fetch-dest": "empty",
                "sec-fetch-mode": "cors",
                "sec-fetch-site": "same-site",
            },
        )
        result = decode_list(response.content)
        logger.info("Fetched %d items from %s feed", len(result.items), query.name)
        return result

    def fetch_detail(self, source_id: int, *, referer: str | None = None) -> str:
        """Return the raw detail document of ``source_id``."""

        url = self._settings.detail_url_template.format(source_id=source_id)
        response = self._get(
            self._client,
            url,
            headers={
                "accept": DOCUMENT_ACCEPT,
                "referer": referer or f"{self._settings.list_origin}/tv/",
                "sec-fetch-dest": "document",
                "sec-fetch-mode": "navigate",
                "sec-fetch-site": "same-origin",
                "upgrade-insecure-requests": "1",
            },
        )
        return response.text

    def search(self, title: str) -> list[SearchResult]:
        """Query the episode-search endpoint by title."""

        headers = {}
        if self._settings.search_cookie:
            headers["cookie"] = self._settings.search_cookie
        response = self._get(
            self._search_client,
            self._settings.search_url,
            params={"q": title},
            headers=headers,
        )
        return decode_search(response.content)
