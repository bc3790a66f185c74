"""Tests for the Typer-based catalog sync CLI."""
from __future__ import annotations

import importlib
import json
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from rq.worker import SimpleWorker
from typer.testing import CliRunner

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.sync_api import create_app  # noqa: E402
from backend.sync_api.schemas import VideoCreate  # noqa: E402
from backend.sync_api.services import tasks  # noqa: E402
from backend.sync_api.services.idgen import IdentifierGenerator  # noqa: E402
from backend.sync_cli import app as cli_app  # noqa: E402
from backend.sync_cli import client as client_module  # noqa: E402
from backend.tests.fakes import (  # noqa: E402
    MOVIE_FEED,
    FakeCatalogSource,
    list_item,
    make_settings,
)

cli_app_module = importlib.import_module("backend.sync_cli.app")


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def source() -> FakeCatalogSource:
    return FakeCatalogSource()


@pytest.fixture()
def cli_client(tmp_path: Path, source: FakeCatalogSource, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """Provide a TestClient and patch the CLI HTTP client factory."""

    settings = make_settings(tmp_path)
    monkeypatch.setattr(tasks, "create_source_client", lambda resolved: source.client(resolved))
    test_client = TestClient(create_app(settings=settings))

    def _factory(base_url: str, *, timeout: float = 10.0, transport: Any = None):
        return test_client

    monkeypatch.setattr(client_module, "create_client", _factory)
    monkeypatch.setattr(cli_app_module, "create_client", _factory)
    return test_client


def drain_jobs(client: TestClient) -> None:
    """Process queued jobs for CLI-oriented tests."""

    app_state = client.app.state.app_state
    worker = SimpleWorker([app_state.job_queue.queue], connection=app_state.job_queue.connection)
    worker.work(burst=True)


def test_health_command_outputs_payload(runner: CliRunner, cli_client: TestClient) -> None:
    result = runner.invoke(cli_app.app, ["health"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["status"] == "ok"


def test_sync_run_and_status(runner: CliRunner, cli_client: TestClient, source: FakeCatalogSource) -> None:
    """Queue a sync, reject a second one, then inspect it once drained."""

    source.lists[MOVIE_FEED] = {"items": [list_item("123", "X")]}

    queued = runner.invoke(cli_app.app, ["sync", "run", "--stage", "ingest"])
    assert queued.exit_code == 0
    job = json.loads(queued.stdout)
    assert job["payload"] == {"stages": ["ingest"]}

    duplicate = runner.invoke(cli_app.app, ["sync", "run"])
    assert duplicate.exit_code == 1
    assert f"A sync job is already active: {job['id']}" in duplicate.output

    drain_jobs(cli_client)

    status = runner.invoke(cli_app.app, ["sync", "status"])
    assert status.exit_code == 0
    payload = json.loads(status.stdout)
    assert payload["running"] is False
    assert payload["last_job"]["status"] == "completed"
    assert payload["catalog"]["total"] == 1


def test_sync_run_rejects_unknown_stage(runner: CliRunner, cli_client: TestClient) -> None:
    result = runner.invoke(cli_app.app, ["sync", "run", "--stage", "publish"])

    assert result.exit_code == 1
    assert "Invalid stage value" in result.output


def test_jobs_commands(runner: CliRunner, cli_client: TestClient) -> None:
    queued = runner.invoke(cli_app.app, ["sync", "run", "--stage", "reconcile"])
    job_id = json.loads(queued.stdout)["id"]
    drain_jobs(cli_client)

    listing = runner.invoke(cli_app.app, ["jobs", "list", "--status", "completed"])
    assert listing.exit_code == 0
    assert [job["id"] for job in json.loads(listing.stdout)] == [job_id]

    shown = runner.invoke(cli_app.app, ["jobs", "show", job_id])
    assert json.loads(shown.stdout)["result"]["stages"][0]["name"] == "reconcile"

    logs = runner.invoke(cli_app.app, ["jobs", "logs", job_id])
    assert json.loads(logs.stdout)[-1]["message"] == "Job completed"

    missing = runner.invoke(cli_app.app, ["jobs", "show", "nope"])
    assert missing.exit_code == 1
    assert "Job not found" in missing.output

    invalid = runner.invoke(cli_app.app, ["jobs", "list", "--status", "cancelled"])
    assert invalid.exit_code == 1


def test_videos_commands(runner: CliRunner, cli_client: TestClient) -> None:
    store = cli_client.app.state.app_state.video_store
    store.create(VideoCreate(id=11, source="douban", source_id=1, type="movie", title="Alpha"))
    store.create(VideoCreate(id=12, source="douban", source_id=2, type="doc", title="Beta"))

    listing = runner.invoke(cli_app.app, ["videos", "list", "--type", "doc"])
    assert listing.exit_code == 0
    assert [video["id"] for video in json.loads(listing.stdout)["items"]] == [12]

    shown = runner.invoke(cli_app.app, ["videos", "show", "11"])
    assert json.loads(shown.stdout)["title"] == "Alpha"

    episodes = runner.invoke(cli_app.app, ["videos", "episodes", "11"])
    assert json.loads(episodes.stdout) == []

    metrics = runner.invoke(cli_app.app, ["videos", "metrics"])
    assert json.loads(metrics.stdout)["total"] == 2

    missing = runner.invoke(cli_app.app, ["videos", "show", "99"])
    assert missing.exit_code == 1

    invalid = runner.invoke(cli_app.app, ["videos", "list", "--status", "archived"])
    assert invalid.exit_code == 1


def test_ids_parse_runs_locally(runner: CliRunner) -> None:
    """Identifier decoding works without an API connection."""

    value = IdentifierGenerator(42).next()

    result = runner.invoke(cli_app.app, ["ids", "parse", str(value)])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["shard"] == 42
    assert payload["sequence"] == 0
