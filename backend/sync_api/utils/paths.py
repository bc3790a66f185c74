"""Filesystem helpers for service storage paths."""
from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir


APP_NAME = "CatalogSync"
APP_AUTHOR = "CatalogSync"


def default_database_path() -> str:
    """Return the platform-appropriate default SQLite database location."""

    base_dir = Path(user_data_dir(APP_NAME, APP_AUTHOR))
    return str(base_dir / "catalog.db")


def default_database_url() -> str:
    return f"sqlite:///{default_database_path()}"


def ensure_parent_directory(path: str) -> str:
    """Expand ``path`` and create its parent directory if it does not exist."""

    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)
