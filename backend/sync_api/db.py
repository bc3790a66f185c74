"""Database helpers for the catalog sync service."""
from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401  registers tables on SQLModel.metadata
from .settings import SyncSettings
from .utils.paths import ensure_parent_directory


def _ensure_sqlite_path(database_url: str) -> None:
    """Create parent directories when using a SQLite URL."""

    if database_url.startswith("sqlite:///"):
        path_part = database_url.removeprefix("sqlite:///").split("?")[0]
        if path_part and path_part != ":memory:":
            ensure_parent_directory(path_part)


def create_engine_from_settings(settings: SyncSettings) -> Engine:
    """Create a SQLModel engine using sync settings."""

    _ensure_sqlite_path(settings.database_url)
    connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
    return create_engine(settings.database_url, echo=settings.database_echo, connect_args=connect_args)


def init_database(engine: Engine) -> None:
    """Create all catalog and job tables."""

    SQLModel.metadata.create_all(engine)

