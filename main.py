#!/usr/bin/env python3
"""
Gatekeeper -- Authentication API server.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 0.0.0.0 --port 5000
  python main.py --reload

Startup order:
  1. Load and validate settings. A missing or invalid required variable
     (DATABASE_URL, AUTH_SECRET) exits with status 1 -- nothing is bound.
  2. Connect to the database. Failure exits with status 1, no retry.
  3. Build the app and serve it. SIGINT / SIGTERM / uncaught errors shut
     down gracefully, with a 10 second force-exit watchdog.

Environment variables: see core/config.py.
"""

import argparse
import logging
import sys
from typing import Optional

import uvicorn
from pydantic import ValidationError

from core.config import get_settings
from core.database import DatabaseConnectionError, DatabaseConnector
from core.shutdown import SHUTDOWN_GRACE_SECONDS, GracefulServer, run_server

logger = logging.getLogger("gatekeeper.server")


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Authentication API server.",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default: PORT, then 5000)")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Development only: restart on code changes (uses asgi:app, no watchdog)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = get_settings()
    except ValidationError as exc:
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]).upper()
            logger.critical("Invalid configuration: %s -- %s", field, error["msg"])
        return 1

    port = args.port if args.port is not None else settings.port

    if args.reload:
        uvicorn.run("asgi:app", host=args.host, port=port, reload=True, log_config=None)
        return 0

    db = DatabaseConnector(settings.database_url)
    try:
        db.connect()
    except DatabaseConnectionError:
        logger.critical("Database unavailable at startup, exiting")
        return 1

    # Imported here so a bad environment fails before the app module loads.
    from api.main import create_app

    app = create_app(settings, connector=db)
    config = uvicorn.Config(
        app,
        host=args.host,
        port=port,
        timeout_graceful_shutdown=SHUTDOWN_GRACE_SECONDS,
        log_config=None,
    )
    server = GracefulServer(config)
    logger.info("Server running on port %d (%s)", port, settings.environment)
    try:
        return run_server(server)
    finally:
        db.disconnect()


if __name__ == "__main__":
    sys.exit(main())
