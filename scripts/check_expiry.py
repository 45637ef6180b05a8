"""Daily expiry check: forward unprocessed counts to the notification sender.

Meant to be run once per evening by an external scheduler (cron, systemd
timer). The "already sent today" guard belongs to that scheduler.
"""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from services.expiry import ExpiryService, load_config

ROOT = Path(__file__).resolve().parents[1]
LOGGER = logging.getLogger("shelfwatch.scripts.check_expiry")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send the daily expiry reminder or status check.")
    parser.add_argument("--config", type=Path, help="Path to the expiry configuration YAML.")
    parser.add_argument("--database", type=Path, help="Override the SQLite database path.")
    parser.add_argument(
        "--mode",
        choices=("check", "reminder"),
        default="check",
        help="check: forward unprocessed counts; reminder: send the pending product list",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv(ROOT / ".env")
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        service = ExpiryService.from_config(config, db_path=args.database)
        result = service.daily_reminder() if args.mode == "reminder" else service.check_and_notify()
    except Exception:
        LOGGER.exception("Expiry check failed")
        return 1

    print(json.dumps(result, indent=2, sort_keys=True))
    if result.get("error"):
        LOGGER.error("Expiry notification was not delivered: %s", result["error"])
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
