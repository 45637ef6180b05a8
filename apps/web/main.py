"""CLI entry-point for running the ShelfWatch expiry web server."""
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv
import uvicorn

from services.expiry import ExpiryService, load_config

from .app import create_app

LOGGER = logging.getLogger("shelfwatch.web")
ROOT = Path(__file__).resolve().parents[2]


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    host_default = os.getenv("SHELFWATCH_WEB_HOST", "0.0.0.0")
    port_default = int(os.getenv("PORT") or os.getenv("SHELFWATCH_WEB_PORT", "8000"))
    parser = argparse.ArgumentParser(description="Run the ShelfWatch expiry web server")
    parser.add_argument(
        "--host",
        default=host_default,
        help="Host interface to bind (default: %(default)s)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=port_default,
        help="Port to listen on (default: %(default)s)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the expiry configuration YAML",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Run the ASGI server hosting the web application."""

    load_dotenv(ROOT / ".env")
    args = _parse_args(argv)
    config = load_config(args.config)
    level = getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    service = ExpiryService.from_config(config)
    app = create_app(service_provider=lambda: service, logger=LOGGER)
    LOGGER.info("Starting ShelfWatch web server on http://%s:%s", args.host, args.port)

    uvicorn.run(app, host=args.host, port=args.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
