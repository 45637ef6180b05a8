"""Core database utilities."""
from __future__ import annotations

import os
from pathlib import Path


def get_db_path() -> Path:
    """Return the configured database path."""

    return Path(os.getenv("SHELFWATCH_DB_PATH", "out/shelfwatch.db"))


def ensure_db_path(path: Path | None = None) -> Path:
    """Ensure the database directory exists and return the absolute path."""

    db_path = Path(path or get_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


__all__ = ["ensure_db_path", "get_db_path"]
