"""Create the ShelfWatch database schema."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from packages.db import create_all, ensure_db_path, get_db_path

LOGGER = logging.getLogger("shelfwatch.migrations")


def run(db_path: Path | None = None) -> Path:
    """Execute migrations and return the database path."""

    target_path = ensure_db_path(db_path)
    try:
        create_all(target_path)
    except Exception:
        LOGGER.exception("Failed to create ORM-managed tables via SQLAlchemy metadata")
        raise
    LOGGER.info("Database migrated at %s", target_path)
    return target_path


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Run database migrations for ShelfWatch.")
    parser.add_argument(
        "--database",
        type=Path,
        default=get_db_path(),
        help="Path to the SQLite database file (default: %(default)s)",
    )
    args = parser.parse_args()
    run(args.database)


if __name__ == "__main__":
    main()
