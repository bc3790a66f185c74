"""Tests for the sync pipeline stages against a fake remote source."""
from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from threading import Lock

import httpx
import pytest
from rq.timeouts import JobTimeoutException
from sqlalchemy.exc import IntegrityError, OperationalError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.sync_api.db import create_engine_from_settings, init_database  # noqa: E402
from backend.sync_api.schemas import EpisodeCreate, VideoCreate  # noqa: E402
from backend.sync_api.services import tasks  # noqa: E402
from backend.sync_api.services.episodes import (  # noqa: E402
    EpisodeMatcher,
    first_line,
    merge_tail,
    select_variant,
)
from backend.sync_api.services.idgen import IdentifierGenerator  # noqa: E402
from backend.sync_api.services.ingest import ListIngestionError, ListIngestor  # noqa: E402
from backend.sync_api.services.pipeline import (  # noqa: E402
    CatalogSyncPipeline,
    SyncAlreadyRunningError,
    SyncRunner,
    normalize_stages,
)
from backend.sync_api.services.reconcile import StatusReconciler  # noqa: E402
from backend.sync_api.stores.episode_store import EpisodeStore  # noqa: E402
from backend.sync_api.stores.video_store import VideoStore  # noqa: E402
from backend.tests.fakes import (  # noqa: E402
    ANIME_FEED,
    MOVIE_FEED,
    TV_FEED,
    FakeCatalogSource,
    list_item,
    make_settings,
    movie_detail,
    series_detail,
)


@pytest.fixture()
def settings(tmp_path: Path):
    return make_settings(tmp_path)


@pytest.fixture()
def engine(settings):
    """Provide an engine bound to an isolated SQLite database."""

    engine = create_engine_from_settings(settings)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def source() -> FakeCatalogSource:
    return FakeCatalogSource()


@pytest.fixture()
def pipeline(settings, engine, source: FakeCatalogSource):
    client = source.client(settings)
    yield CatalogSyncPipeline.from_settings(settings, engine, client)
    client.close()


def _only_video(engine):
    listing = VideoStore(engine).list()
    assert listing.total == 1
    return listing.items[0]


def test_end_to_end_single_movie(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    """One list item flows through ingest, enrichment, episode match and reconcile."""

    source.lists[MOVIE_FEED] = {"items": [list_item("123", "X", "movie", 8.5)]}
    source.details[123] = movie_detail()
    source.search_results["X"] = [{"title": "X", "source_name": "站点", "episodes": ["http://a/1"]}]

    pipeline.run(["ingest"])
    video = _only_video(engine)
    assert video.source == "douban"
    assert video.source_id == 123
    assert video.type == "movie"
    assert video.score == 8.5
    assert video.release_date is None
    assert video.status is None

    pipeline.run(["enrich"])
    video = VideoStore(engine).find_by_id(video.id)
    assert video.director_json == '["张艺谋"]'
    assert video.actors_json == '["演员甲","演员乙"]'
    assert video.tags_json == '["剧情","历史"]'
    assert video.release_date == date(2025, 1, 7)
    assert video.runtime == 128

    pipeline.run(["match"])
    episodes = EpisodeStore(engine).list_for_video(video.id)
    assert len(episodes) == 1
    assert episodes[0].episode_number == 1
    assert episodes[0].play_urls == "http://a/1"
    assert episodes[0].channel == "站点"

    pipeline.run(["reconcile"])
    assert VideoStore(engine).find_by_id(video.id).status == "visible"


def test_full_run_reports_every_stage(pipeline: CatalogSyncPipeline, source: FakeCatalogSource) -> None:
    """A full run executes stages in canonical order and records each outcome."""

    source.lists[MOVIE_FEED] = {"items": [list_item("123", "X")]}
    source.details[123] = movie_detail()

    report = pipeline.run()

    assert [stage.name for stage in report.stages] == [
        "ingest",
        "enrich:movie",
        "enrich:tv",
        "enrich:anime",
        "enrich:tvshow",
        "enrich:doc",
        "match",
        "reconcile",
    ]
    assert report.failed_stages == []
    assert report.stages[0].detail["created"] == 1
    assert report.as_dict()["finished_at"] is not None


def test_ingest_twice_creates_no_duplicates(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    """Re-running ingestion against an unchanged list keeps natural keys unique."""

    source.lists[MOVIE_FEED] = {"items": [list_item("123", "X"), list_item("124", "Y")]}
    source.lists[TV_FEED] = {"items": [list_item("123", "X", "tv")]}

    first = pipeline.ingestor.run()
    second = pipeline.ingestor.run()

    assert first.created == 2
    assert first.existing == 1
    assert second.created == 0
    assert second.existing == 3
    assert VideoStore(engine).list().total == 2


def test_invalid_ids_and_types_are_skipped(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    source.lists[MOVIE_FEED] = {
        "items": [list_item("abc", "Broken"), list_item("9", "Odd", "podcast"), list_item("10", "Fine")]
    }

    report = pipeline.ingestor.run()

    assert report.skipped == 2
    assert report.created == 1
    assert _only_video(engine).source_id == 10


def test_fixed_category_type_overrides_item_type(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    source.lists[ANIME_FEED] = {"items": [list_item("555", "Anime", "tv")]}

    pipeline.ingestor.run()

    assert _only_video(engine).type == "anime"


def test_create_is_insert_if_absent(engine) -> None:
    """A second insert for the same natural key is a benign no-op."""

    store = VideoStore(engine)
    payload = VideoCreate(id=1, source="douban", source_id=77, type="movie", title="Z")

    assert store.create(payload) is not None
    assert store.create(payload.model_copy(update={"id": 2})) is None
    assert store.list().total == 1


def test_create_reraises_primary_key_collisions(engine) -> None:
    """A reused id with a new natural key is an error, not an existing video."""

    store = VideoStore(engine)
    store.create(VideoCreate(id=1, source="douban", source_id=77, type="movie", title="Z"))

    with pytest.raises(IntegrityError):
        store.create(VideoCreate(id=1, source="douban", source_id=78, type="movie", title="W"))
    assert store.find_by_natural_key("douban", 78) is None


class FlakyLookupStore(VideoStore):
    """Video store whose natural-key lookup fails for selected source ids."""

    def __init__(self, engine, failing: set[int]) -> None:
        super().__init__(engine)
        self.failing = failing

    def find_by_natural_key(self, source: str, source_id: int):
        if source_id in self.failing:
            raise OperationalError("SELECT videos", {}, Exception("database is locked"))
        return super().find_by_natural_key(source, source_id)


def test_ingest_lookup_failure_skips_only_that_item(engine, settings, source: FakeCatalogSource) -> None:
    source.lists[MOVIE_FEED] = {
        "items": [list_item("1", "A"), list_item("2", "B"), list_item("3", "C")]
    }
    client = source.client(settings)
    ingestor = ListIngestor(client, FlakyLookupStore(engine, {2}), IdentifierGenerator(7))

    report = ingestor.run()
    client.close()

    assert report.fetched == 3
    assert report.skipped == 1
    assert report.created == 2
    assert sorted(video.source_id for video in VideoStore(engine).list().items) == [1, 3]


def test_worker_jobs_share_one_identifier_generator(settings) -> None:
    first = tasks.worker_identifier_generator(settings)

    assert tasks.worker_identifier_generator(settings) is first
    assert first.shard_id == 7
    other = settings.model_copy(update={"machine_id": 8})
    assert tasks.worker_identifier_generator(other) is not first


def test_list_fetch_failure_is_fatal_only_when_every_feed_fails(
    pipeline: CatalogSyncPipeline, source: FakeCatalogSource
) -> None:
    """Individual feed failures are logged; losing every feed aborts the run."""

    source.failing_feeds = {TV_FEED}
    report = pipeline.ingestor.run()
    assert report.failed_categories == ["tv"]

    source.fail_all_feeds()
    with pytest.raises(ListIngestionError):
        pipeline.run()


def test_later_stage_failure_does_not_abort_run(
    pipeline: CatalogSyncPipeline, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Errors after ingestion are recorded and the remaining stages still run."""

    def boom():
        raise RuntimeError("search backend down")

    monkeypatch.setattr(pipeline.matcher, "run", boom)

    report = pipeline.run(["match", "reconcile"])

    assert report.failed_stages == ["match"]
    assert report.stages[0].error == "search backend down"
    assert report.stages[1].status == "completed"


def test_job_time_limit_aborts_the_run(
    pipeline: CatalogSyncPipeline, monkeypatch: pytest.MonkeyPatch
) -> None:
    """The worker's time limit is never recorded as an ordinary stage failure."""

    def expired(*args, **kwargs):
        raise JobTimeoutException("Task exceeded maximum timeout value (1 seconds)")

    monkeypatch.setattr(pipeline.matcher, "run", expired)
    seen = []

    with pytest.raises(JobTimeoutException):
        pipeline.run(["match", "reconcile"], on_stage=lambda stage, index, total: seen.append(stage))

    assert [(stage.name, stage.status) for stage in seen] == [("match", "failed")]


def test_time_limit_inside_item_handlers_propagates(
    pipeline: CatalogSyncPipeline, source: FakeCatalogSource, monkeypatch: pytest.MonkeyPatch
) -> None:
    source.lists[MOVIE_FEED] = {"items": [list_item("1", "A"), list_item("2", "B")]}
    pipeline.ingestor.run()

    def expired(*args, **kwargs):
        raise JobTimeoutException("Task exceeded maximum timeout value (1 seconds)")

    monkeypatch.setattr(pipeline.enricher._client, "fetch_detail", expired)
    monkeypatch.setattr(pipeline.matcher._client, "search", expired)

    with pytest.raises(JobTimeoutException):
        pipeline.enricher.run("movie")
    with pytest.raises(JobTimeoutException):
        pipeline.matcher.run()


def test_enrichment_continues_after_item_failure(
    pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource
) -> None:
    """A missing detail page fails that video only."""

    source.lists[MOVIE_FEED] = {"items": [list_item("1", "A"), list_item("2", "B")]}
    source.details[2] = movie_detail()
    pipeline.ingestor.run()

    report = pipeline.enricher.run("movie")

    assert report.selected == 2
    assert report.updated == 1
    assert len(report.failed) == 1
    store = VideoStore(engine)
    pending = store.find_needing_enrichment("movie", 10)
    assert [video.source_id for video in pending] == [1]


def test_enrichment_selection_respects_markers_and_batch_size(engine, settings, source) -> None:
    store = VideoStore(engine)
    store.create(VideoCreate(id=1, source="douban", source_id=1, type="tv", title="A"))
    store.create(VideoCreate(id=2, source="douban", source_id=2, type="tv", title="B"))
    store.create(VideoCreate(id=3, source="douban", source_id=3, type="movie", title="C"))
    enriched = store.find_by_id(2).model_copy(update={"release_date": date(2020, 1, 1)})
    store.update(enriched)
    empty_country = store.find_by_id(1).model_copy(update={"country_json": "[]"})
    store.update(empty_country)

    assert [video.id for video in store.find_needing_enrichment("tv", 10)] == [1]
    assert store.find_needing_enrichment("movie", 0) == []


def test_series_episode_merge_is_append_only(
    pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource
) -> None:
    """Only tail entries are appended; stored episode URLs never change."""

    source.lists[ANIME_FEED] = {"items": [list_item("700", "Show", "tv")]}
    source.details[700] = series_detail(episodes=3)
    pipeline.run(["ingest", "enrich"])
    video = _only_video(engine)
    assert video.episode_count == 3
    episodes = EpisodeStore(engine)

    source.search_results["Show"] = [
        {"title": "Show", "source_name": "s1", "episodes": ["http://e/1", "http://e/2"]}
    ]
    first = pipeline.matcher.run()
    assert first.episodes_added == 2
    after_first = VideoStore(engine).find_by_id(video.id)
    assert after_first.status is None
    assert after_first.is_completed is False
    assert after_first.is_fresh is True

    source.search_results["Show"] = [
        {
            "title": "Show",
            "source_name": "s1",
            "episodes": ["http://changed/1", "http://changed/2", "http://e/3"],
        }
    ]
    second = pipeline.matcher.run()
    assert second.episodes_added == 1
    stored = episodes.list_for_video(video.id)
    assert [(e.episode_number, e.play_urls) for e in stored] == [
        (1, "http://e/1"),
        (2, "http://e/2"),
        (3, "http://e/3"),
    ]
    after_second = VideoStore(engine).find_by_id(video.id)
    assert after_second.status == "visible"
    assert after_second.is_completed is True

    third = pipeline.matcher.run()
    assert third.candidates == 0


def test_shrinking_source_never_removes_episodes(engine, settings, source: FakeCatalogSource) -> None:
    videos = VideoStore(engine)
    episodes = EpisodeStore(engine)
    videos.create(VideoCreate(id=10, source="douban", source_id=10, type="tv", title="T"))
    client = source.client(settings)
    matcher = EpisodeMatcher(client, videos, episodes)

    source.search_results["T"] = [{"title": "T", "episodes": ["u1", "u2", "u3"]}]
    matcher.run()
    source.search_results["T"] = [{"title": "T", "episodes": ["u1"]}]
    matcher.run()
    client.close()

    assert episodes.count_for_video(10) == 3


def test_only_exact_title_match_is_used(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    source.lists[MOVIE_FEED] = {"items": [list_item("5", "X")]}
    source.search_results["X"] = [
        {"title": "X 2", "episodes": ["http://wrong/1"]},
        {"title": "X", "episodes": ["http://right/1"]},
        {"title": "X", "episodes": ["http://ignored/1"]},
    ]
    pipeline.ingestor.run()

    pipeline.matcher.run()

    video = _only_video(engine)
    stored = EpisodeStore(engine).list_for_video(video.id)
    assert [episode.play_urls for episode in stored] == ["http://right/1"]


def test_unmatched_title_creates_no_episode(pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource) -> None:
    source.lists[MOVIE_FEED] = {"items": [list_item("5", "X")]}
    source.search_results["X"] = [{"title": "Y", "episodes": ["http://a/1"]}]
    pipeline.ingestor.run()

    report = pipeline.matcher.run()

    assert report.unmatched == 1
    assert EpisodeStore(engine).count_for_video(_only_video(engine).id) == 0


def test_search_failure_for_one_video_does_not_stop_the_rest(
    pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource
) -> None:
    """Server errors and malformed payloads count as failed; later videos still match."""

    source.lists[MOVIE_FEED] = {
        "items": [list_item("1", "Broken"), list_item("2", "Garbled"), list_item("3", "Fine")]
    }
    source.search_errors["Broken"] = httpx.Response(500, text="server error")
    source.search_errors["Garbled"] = httpx.Response(200, text="<html>not json</html>")
    source.search_results["Fine"] = [{"title": "Fine", "episodes": ["http://a/1"]}]
    pipeline.ingestor.run()

    report = pipeline.matcher.run()

    assert report.failed == 2
    assert report.matched == 1
    assert report.episodes_added == 1
    fine = VideoStore(engine).find_by_natural_key("douban", 3)
    assert [episode.play_urls for episode in EpisodeStore(engine).list_for_video(fine.id)] == [
        "http://a/1"
    ]


def test_movie_uses_preferred_variant_first_line_truncated(
    pipeline: CatalogSyncPipeline, engine, source: FakeCatalogSource
) -> None:
    long_url = "https://VIP.example/" + "a" * 300
    source.lists[MOVIE_FEED] = {"items": [list_item("8", "M")]}
    source.search_results["M"] = [
        {"title": "M", "episodes": ["http://plain/1", "http://ryplay7/1", f"\n  {long_url}\nsecond"]}
    ]
    pipeline.ingestor.run()

    pipeline.matcher.run()
    pipeline.matcher.run()

    stored = EpisodeStore(engine).list_for_video(_only_video(engine).id)
    assert len(stored) == 1
    assert stored[0].episode_number == 1
    assert stored[0].play_urls == long_url[:255]


def test_select_variant_order() -> None:
    assert select_variant(["a", "b-ryplay7", "c-VIP"]) == "c-VIP"
    assert select_variant(["a", "b-ryplay7"]) == "b-ryplay7"
    assert select_variant(["a", "b"]) == "a"
    assert select_variant([]) is None


def test_first_line_and_merge_tail_helpers() -> None:
    assert first_line("\r\n  http://x/1 \r\nhttp://x/2") == "http://x/1"
    assert first_line("   \n ") is None
    assert merge_tail(1, ["a", "b", "c"]) == [(2, "b"), (3, "c")]
    assert merge_tail(0, ["a", " ", "c"]) == [(1, "a")]
    assert merge_tail(3, ["a"]) == []


def test_freshness_expires_after_three_days(engine, settings, source: FakeCatalogSource) -> None:
    videos = VideoStore(engine)
    episodes = EpisodeStore(engine)
    videos.create(VideoCreate(id=20, source="douban", source_id=20, type="tv", title="F"))
    source.search_results["F"] = [{"title": "F", "episodes": ["u1"]}]
    client = source.client(settings)

    EpisodeMatcher(client, videos, episodes).run()
    assert videos.find_by_id(20).is_fresh is True

    later = EpisodeMatcher(
        client, videos, episodes, now=lambda: datetime.utcnow() + timedelta(days=4)
    )
    later.refresh_flags(20)
    client.close()

    assert videos.find_by_id(20).is_fresh is False


def test_hidden_videos_are_never_matched(engine) -> None:
    videos = VideoStore(engine)
    videos.create(VideoCreate(id=30, source="douban", source_id=30, type="tv", title="H"))
    videos.set_status(30, "hidden")

    assert videos.find_pending_episode_match() == []


def test_status_reconciler_is_idempotent(engine) -> None:
    videos = VideoStore(engine)
    episodes = EpisodeStore(engine)
    videos.create(VideoCreate(id=40, source="douban", source_id=40, type="movie", title="R"))
    videos.create(VideoCreate(id=41, source="douban", source_id=41, type="movie", title="S"))
    episodes.append(40, [_episode(1, "u")])
    reconciler = StatusReconciler(videos)

    assert reconciler.run() == 1
    assert reconciler.run() == 0
    assert videos.find_by_id(40).status == "visible"
    assert videos.find_by_id(41).status is None


def test_episode_append_rejects_duplicate_numbers(engine) -> None:
    """Colliding episode numbers roll back the batch and leave the parent untouched."""

    videos = VideoStore(engine)
    episodes = EpisodeStore(engine)
    videos.create(VideoCreate(id=50, source="douban", source_id=50, type="tv", title="D"))
    assert episodes.append(50, [_episode(1, "u1")]) == 1
    touched = videos.find_by_id(50).updated_at

    assert episodes.append(50, [_episode(2, "u2"), _episode(1, "dup")]) == 0
    assert episodes.count_for_video(50) == 1
    assert videos.find_by_id(50).updated_at == touched


def test_sync_runner_rejects_overlapping_runs(pipeline: CatalogSyncPipeline) -> None:
    lock = Lock()
    runner = SyncRunner(pipeline, lock=lock)

    with lock:
        assert runner.running is True
        with pytest.raises(SyncAlreadyRunningError):
            runner.run_sync(["reconcile"])

    assert runner.run_sync(["reconcile"]).failed_stages == []


def test_normalize_stages_keeps_canonical_order() -> None:
    assert normalize_stages(["reconcile", "ingest"]) == ["ingest", "reconcile"]
    assert normalize_stages(None) == ["ingest", "enrich", "match", "reconcile"]
    with pytest.raises(ValueError):
        normalize_stages(["publish"])


def _episode(number: int, url: str) -> EpisodeCreate:
    return EpisodeCreate(episode_number=number, play_urls=url)
