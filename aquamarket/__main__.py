"""Aquamarket process entry-point.

Usage:
    python -m aquamarket serve [--host HOST] [--port PORT]
    python -m aquamarket sweep
    python -m aquamarket init-db

``serve`` runs the HTTP API under uvicorn.  ``sweep`` runs one expiry sweep
and exits, for cron.  ``init-db`` creates the schema and exits.  Logging is
configured first so every later import gets a working logger.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid

from aquamarket.core import configure_logging
from aquamarket.core.exceptions import ConfigError
from aquamarket.core.logging_config import REQUEST_ID_CTX
from aquamarket.core.settings import Settings


async def _run_sweep(settings: Settings) -> int:
    from aquamarket.service import Services  # noqa: PLC0415
    from aquamarket.storage.database import Database  # noqa: PLC0415

    REQUEST_ID_CTX.set(f"sweep-{uuid.uuid4().hex[:8]}")
    db = await Database.open(settings.database_target)
    try:
        services = Services.build(db, settings)
        expired = await services.sweeper.sweep()
        await services.dispatcher.drain()
    finally:
        await db.close()
    return len(expired)


async def _run_init_db(settings: Settings) -> None:
    from aquamarket.storage.database import Database  # noqa: PLC0415

    db = await Database.open(settings.database_target)
    await db.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="aquamarket",
        description="Aquarium classifieds: listing lifecycle API and maintenance commands.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None, help="Override API_HOST.")
    serve.add_argument("--port", type=int, default=None, help="Override API_PORT.")
    commands.add_parser("sweep", help="Expire overdue listings once and exit.")
    commands.add_parser("init-db", help="Create the database schema and exit.")

    args = parser.parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"aquamarket: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    try:
        settings = Settings()
    except ValueError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    try:
        if args.command == "serve":
            import uvicorn  # noqa: PLC0415

            from aquamarket.api.app import create_app  # noqa: PLC0415

            host = args.host or settings.api_host
            port = args.port or settings.api_port
            logger.info("Serving Aquamarket API on %s:%d", host, port)
            uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
        elif args.command == "sweep":
            count = asyncio.run(_run_sweep(settings))
            logger.info("Sweep finished: %d listing(s) expired", count)
        else:
            asyncio.run(_run_init_db(settings))
            logger.info("Database initialised at %s", settings.database_target)
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
