"""In-memory stand-ins for the remote list, detail and search sources."""
from __future__ import annotations

from typing import Any

import httpx

from backend.sync_api.services.remote import CatalogSourceClient
from backend.sync_api.settings import SyncSettings

# Keys of ``FakeCatalogSource.lists`` are the ``type`` query parameter of each feed.
MOVIE_FEED = "全部"
TV_FEED = "tv"
ANIME_FEED = "tv_animation"
DOC_FEED = "tv_documentary"
SHOW_FEED = "show"


def list_item(source_id: str, title: str, item_type: str = "movie", score: float | None = 8.5) -> dict[str, Any]:
    return {
        "id": source_id,
        "title": title,
        "type": item_type,
        "rating": {"value": score} if score is not None else None,
        "pic": {"normal": f"https://img.example/{source_id}.jpg"},
    }


def movie_detail(
    *,
    director: str = '<a href="/celebrity/1/">张艺谋</a>',
    actors: str = '<a href="/c/2/">演员甲</a> / <a href="/c/3/">演员乙</a>',
    genres: tuple[str, ...] = ("剧情", "历史"),
    country: str = "中国大陆 / 中国香港",
    release: str = "2025-01-07(中国大陆)",
    runtime: str = "128分钟",
    score: str = "8.1",
) -> str:
    genre_markup = "".join(f'<span property="v:genre">{genre}</span> / ' for genre in genres)
    return f"""
<div id="info">
  <span><span class='pl'>导演</span>: <span class='attrs'>{director}</span></span><br/>
  <span class="actor"><span class='pl'>主演</span>: <span class='attrs'>{actors}</span></span><br/>
  <span class="pl">类型:</span> {genre_markup}<br/>
  <span class="pl">制片国家/地区:</span> {country}<br/>
  <span class="pl">上映日期:</span> <span property="v:initialReleaseDate" content="{release}">{release}</span><br/>
  <span class="pl">片长:</span> <span property="v:runtime" content="128">{runtime}</span><br/>
  <span class="pl">IMDb:</span> tt1234567<br>
</div>
<strong class="ll rating_num" property="v:average">{score}</strong>
<span property="v:summary" class="">一个关于&quot;时间&quot;的故事。</span>
"""


def series_detail(
    *,
    episodes: int = 3,
    premiere: str = "2025-03-01(中国大陆)",
    country: str = "日本",
    genres: tuple[str, ...] = ("动画",),
) -> str:
    genre_markup = "".join(f'<span property="v:genre">{genre}</span> / ' for genre in genres)
    return f"""
<div id="info">
  <span><span class='pl'>导演</span>: <span class='attrs'><a>监督</a></span></span><br/>
  <span class="pl">类型:</span> {genre_markup}<br/>
  <span class="pl">制片国家/地区:</span> {country}<br/>
  <span class="pl">首播:</span> <span property="v:initialReleaseDate" content="{premiere}">{premiere}</span><br/>
  <span class="pl">集数:</span> {episodes}<br/>
</div>
<strong class="ll rating_num" property="v:average">7.9</strong>
"""


class FakeCatalogSource:
    """Routes requests by path and records every request it sees."""

    def __init__(self) -> None:
        self.lists: dict[str, Any] = {}
        self.details: dict[int, str] = {}
        self.search_results: dict[str, list[dict[str, Any]]] = {}
        self.search_errors: dict[str, httpx.Response] = {}
        self.failing_feeds: set[str] = set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if "/recent_hot/" in path:
            feed = request.url.params.get("type", "")
            if feed in self.failing_feeds:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json=self.lists.get(feed, {"items": []}))
        if path.startswith("/subject/"):
            source_id = int(path.strip("/").split("/")[1])
            document = self.details.get(source_id)
            if document is None:
                return httpx.Response(404, text="missing")
            return httpx.Response(200, text=document)
        if path == "/api/search":
            title = request.url.params.get("q", "")
            if title in self.search_errors:
                return self.search_errors[title]
            return httpx.Response(200, json={"results": self.search_results.get(title, [])})
        return httpx.Response(404)

    def fail_all_feeds(self) -> None:
        self.failing_feeds = {MOVIE_FEED, TV_FEED, ANIME_FEED, DOC_FEED, SHOW_FEED}

    def paths(self, fragment: str) -> list[str]:
        return [str(request.url) for request in self.requests if fragment in request.url.path]

    def client(self, settings: SyncSettings) -> CatalogSourceClient:
        return CatalogSourceClient(settings, transport=httpx.MockTransport(self.handler))


def make_settings(tmp_path, **overrides: Any) -> SyncSettings:
    """Settings pointing at a temp SQLite file with pacing disabled."""

    values: dict[str, Any] = {
        "database_url": f"sqlite:///{tmp_path / 'catalog.db'}",
        "redis_url": "fakeredis://",
        "machine_id": 7,
        "detail_interval_seconds": 0,
        "search_interval_seconds": 0,
    }
    values.update(overrides)
    return SyncSettings(**values)
