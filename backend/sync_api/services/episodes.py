"""Episode matching: resolves playable URLs for catalog videos."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence

from rq.timeouts import BaseTimeoutException

from ...extractor import SearchResult, truncate_chars
from ..models import PLAY_URL_MAX_CHARS
from ..schemas import STATUS_VISIBLE, EpisodeCreate, VideoModel
from ..stores.episode_store import EpisodeStore
from ..stores.video_store import VideoStore
from .rate_limiter import TokenBucket
from .remote import CatalogSourceClient

logger = logging.getLogger(__name__)

PREFERRED_VARIANT_MARKERS = ("vip", "ryplay7")


def select_variant(entries: Sequence[str]) -> str | None:
    """Pick the preferred stream variant: ``vip``, then ``ryplay7``, then the first entry."""

    for marker in PREFERRED_VARIANT_MARKERS:
        for entry in entries:
            if marker in entry.lower():
                return entry
    return entries[0] if entries else None


def first_line(value: str) -> str | None:
    for line in value.replace("\r\n", "\n").split("\n"):
        line = line.strip()
        if line:
            return line
    return None


def find_exact_match(results: Sequence[SearchResult], title: str) -> SearchResult | None:
    return next((result for result in results if result.title == title), None)


def merge_tail(existing_count: int, authoritative: Sequence[str]) -> list[tuple[int, str]]:
    """Return ``(episode_number, play_url)`` pairs past ``existing_count``.

    Stops at the first blank entry so numbering never skips.
    """

    tail: list[tuple[int, str]] = []
    for index in range(existing_count, len(authoritative)):
        value = authoritative[index].strip()
        if not value:
            break
        tail.append((index + 1, truncate_chars(value, PLAY_URL_MAX_CHARS)))
    return tail


@dataclass(slots=True)
class MatchReport:
    candidates: int = 0
    matched: int = 0
    unmatched: int = 0
    episodes_added: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "candidates": self.candidates,
            "matched": self.matched,
            "unmatched": self.unmatched,
            "episodes_added": self.episodes_added,
            "failed": self.failed,
        }


class EpisodeMatcher:
    """Search each pending video by title and merge its episodes."""

    def __init__(
        self,
        client: CatalogSourceClient,
        videos: VideoStore,
        episodes: EpisodeStore,
        *,
        freshness_days: int = 3,
        limiter: TokenBucket | None = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._client = client
        self._videos = videos
        self._episodes = episodes
        self._freshness = timedelta(days=freshness_days)
        self._limiter = limiter
        self._now = now

    def run(self) -> MatchReport:
        report = MatchReport()
        pending = self._videos.find_pending_episode_match()
        report.candidates = len(pending)
        logger.info("Searching episodes for %d videos", len(pending))

        for video in pending:
            if not video.title:
                continue
            if self._limiter is not None:
                self._limiter.acquire()
            try:
                added = self.match_video(video)
            except BaseTimeoutException:
                raise
            except Exception as exc:
                logger.warning("Episode match failed for video %s (%s): %s", video.id, video.title, exc)
                report.failed += 1
                continue
            if added is None:
                report.unmatched += 1
            else:
                report.matched += 1
                report.episodes_added += added

        return report

    def match_video(self, video: VideoModel) -> int | None:
        """Merge episodes for one video; ``None`` when no usable result exists."""

        result = find_exact_match(self._client.search(video.title), video.title)
        if result is None or not result.episodes:
            return None

        if video.type == "movie":
            added = self._merge_movie(video, result)
        else:
            added = self._merge_series(video, result)
        if added is None:
            return None

        self.refresh_flags(video.id)
        return added

    def _merge_movie(self, video: VideoModel, result: SearchResult) -> int | None:
        selected = select_variant(result.episodes)
        line = first_line(selected) if selected else None
        if not line:
            return None
        if self._episodes.exists_for_video(video.id):
            return 0
        episode = EpisodeCreate(
            episode_number=1,
            play_urls=truncate_chars(line, PLAY_URL_MAX_CHARS),
            channel=result.source_name,
            name=result.title,
        )
        return self._episodes.append(video.id, [episode])

    def _merge_series(self, video: VideoModel, result: SearchResult) -> int:
        # The whole list is authoritative regardless of which variant is preferred.
        if self._episodes.exists_for_video(video.id) and video.status != STATUS_VISIBLE:
            self._videos.set_status(video.id, STATUS_VISIBLE)

        existing = self._episodes.count_for_video(video.id)
        tail = merge_tail(existing, result.episodes)
        if not tail:
            return 0

        added = self._episodes.append(
            video.id,
            [
                EpisodeCreate(
                    episode_number=number,
                    play_urls=play_url,
                    channel=result.source_name,
                    name=result.title,
                )
                for number, play_url in tail
            ],
        )
        if added:
            logger.info(
                "Appended episodes %d-%d to video %s", tail[0][0], tail[-1][0], video.id
            )
        return added

    def refresh_flags(self, video_id: int) -> None:
        """Recompute freshness and completion from the stored episodes."""

        last = self._episodes.last_for_video(video_id)
        is_fresh = last is not None and last.created_at > self._now() - self._freshness

        is_completed = None
        video = self._videos.find_by_id(video_id)
        if video is not None and video.episode_count is not None:
            is_completed = self._episodes.count_for_video(video_id) == video.episode_count

        self._videos.set_flags(video_id, is_fresh=is_fresh, is_completed=is_completed)
