"""Command line interface for the catalog sync API."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, List, Optional

import typer

from ..sync_api.services.idgen import DEFAULT_EPOCH_MS, parse_identifier
from .client import create_client

DEFAULT_API_BASE = "http://localhost:8000"

app = typer.Typer(help="Interact with the catalog sync service.")
sync_app = typer.Typer(help="Trigger and monitor catalog syncs.")
app.add_typer(sync_app, name="sync")
jobs_app = typer.Typer(help="Inspect sync jobs.")
app.add_typer(jobs_app, name="jobs")
videos_app = typer.Typer(help="Browse the synced catalog.")
app.add_typer(videos_app, name="videos")
ids_app = typer.Typer(help="Identifier diagnostics.")
app.add_typer(ids_app, name="ids")


JOB_STATUS_CHOICES = {"queued", "running", "completed", "failed"}
STAGE_CHOICES = ("ingest", "enrich", "match", "reconcile")
VIDEO_TYPE_CHOICES = {"movie", "tv", "anime", "tvshow", "doc"}
VIDEO_STATUS_CHOICES = {"pending", "visible", "hidden"}


def _api_base_option() -> typer.Option:
    return typer.Option(
        DEFAULT_API_BASE,
        "--api-base",
        help="Base URL for the catalog sync API.",
        show_default=True,
        envvar="CATALOG_SYNC_API_BASE",
    )


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _get(api_base: str, path: str, *, params: dict[str, object] | None = None, missing: str | None = None) -> None:
    with create_client(api_base) as client:
        response = client.get(path, params=params)
        if missing and response.status_code == 404:
            typer.echo(missing, err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@app.command()
def health(api_base: str = _api_base_option()) -> None:
    """Call the /health endpoint and pretty-print the response."""

    _get(api_base, "/health")


@sync_app.command("run")
def run_sync(
    stages: Optional[List[str]] = typer.Option(
        None,
        "--stage",
        help="Limit the run to specific stages (repeat the flag).",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Queue a catalog sync job."""

    body: dict[str, object] | None = None
    if stages:
        invalid = [stage for stage in stages if stage not in STAGE_CHOICES]
        if invalid:
            typer.echo("Invalid stage value. Allowed values: " + ", ".join(STAGE_CHOICES), err=True)
            raise typer.Exit(code=1)
        body = {"stages": stages}

    with create_client(api_base) as client:
        response = client.post("/sync/run", json=body)
        if response.status_code == 409:
            detail = response.json().get("detail", {})
            job = detail.get("job", {}) if isinstance(detail, dict) else {}
            typer.echo(f"A sync job is already active: {job.get('id', 'unknown')}", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@sync_app.command("status")
def sync_status(api_base: str = _api_base_option()) -> None:
    """Show the latest sync job and catalog counters."""

    _get(api_base, "/sync/status")


@jobs_app.command("list")
def list_jobs(
    limit: int = typer.Option(10, min=1, max=100, help="Number of recent jobs to display."),
    statuses: Optional[List[str]] = typer.Option(
        None,
        "--status",
        help="Filter results to specific job statuses (repeat the flag).",
    ),
    job_type: Optional[str] = typer.Option(None, "--type", help="Filter results to a job type."),
    api_base: str = _api_base_option(),
) -> None:
    """Display recent jobs."""

    params: dict[str, object] = {"limit": limit}
    if statuses:
        normalized = [status.lower() for status in statuses]
        if any(status not in JOB_STATUS_CHOICES for status in normalized):
            typer.echo(
                "Invalid status value. Allowed values: " + ", ".join(sorted(JOB_STATUS_CHOICES)),
                err=True,
            )
            raise typer.Exit(code=1)
        params["status"] = normalized
    if job_type:
        params["type"] = job_type

    _get(api_base, "/jobs", params=params)


@jobs_app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Identifier of the job to display."),
    api_base: str = _api_base_option(),
) -> None:
    """Display details for a single job."""

    _get(api_base, f"/jobs/{job_id}", missing="Job not found")


@jobs_app.command("logs")
def job_logs(
    job_id: str = typer.Argument(..., help="Identifier of the job to inspect."),
    limit: int = typer.Option(50, min=1, max=500, help="Maximum number of log entries."),
    api_base: str = _api_base_option(),
) -> None:
    """Display persisted log events for a job."""

    _get(api_base, f"/jobs/{job_id}/logs", params={"limit": limit}, missing="Job not found")


@videos_app.command("list")
def list_videos(
    video_type: Optional[str] = typer.Option(None, "--type", help="Filter by video type."),
    status: Optional[str] = typer.Option(None, "--status", help="pending, visible or hidden."),
    query: Optional[str] = typer.Option(None, help="Optional title search term."),
    page: int = typer.Option(1, min=1, help="Page number starting at 1."),
    page_size: int = typer.Option(25, min=1, max=200, help="Number of items per page."),
    api_base: str = _api_base_option(),
) -> None:
    """Display a page of catalog videos."""

    if video_type is not None and video_type not in VIDEO_TYPE_CHOICES:
        typer.echo("Invalid type. Allowed values: " + ", ".join(sorted(VIDEO_TYPE_CHOICES)), err=True)
        raise typer.Exit(code=1)
    if status is not None and status not in VIDEO_STATUS_CHOICES:
        typer.echo("Invalid status. Allowed values: " + ", ".join(sorted(VIDEO_STATUS_CHOICES)), err=True)
        raise typer.Exit(code=1)

    params: dict[str, object] = {"page": page, "page_size": page_size}
    if video_type:
        params["type"] = video_type
    if status:
        params["status"] = status
    if query:
        params["query"] = query
    _get(api_base, "/videos", params=params)


@videos_app.command("show")
def show_video(
    video_id: int = typer.Argument(..., help="Video identifier."),
    api_base: str = _api_base_option(),
) -> None:
    """Display a single video."""

    _get(api_base, f"/videos/{video_id}", missing="Video not found")


@videos_app.command("episodes")
def video_episodes(
    video_id: int = typer.Argument(..., help="Video identifier."),
    api_base: str = _api_base_option(),
) -> None:
    """Display the episodes stored for a video."""

    _get(api_base, f"/videos/{video_id}/episodes", missing="Video not found")


@videos_app.command("metrics")
def video_metrics(api_base: str = _api_base_option()) -> None:
    """Display aggregate catalog statistics."""

    _get(api_base, "/videos/metrics")


@ids_app.command("parse")
def parse_id(
    value: int = typer.Argument(..., min=0, help="Identifier to decode."),
    epoch_ms: int = typer.Option(
        DEFAULT_EPOCH_MS,
        "--epoch-ms",
        envvar="CATALOG_SYNC_ID_EPOCH_MS",
        help="Epoch the identifier was generated against.",
    ),
) -> None:
    """Decode an identifier locally without calling the API."""

    parts = parse_identifier(value, epoch_ms=epoch_ms)
    _echo_json(
        {
            "id": value,
            "timestamp_ms": parts.timestamp_ms,
            "issued_at": datetime.fromtimestamp(parts.timestamp_ms / 1000, tz=timezone.utc).isoformat(),
            "shard": parts.shard,
            "sequence": parts.sequence,
        }
    )

