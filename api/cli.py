#!/usr/bin/env python3
"""CLI for field service API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate [target]   Run database migrations (default target: head)
    refresh-stats      Recompute and store the current month's dashboard snapshot
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _get_alembic_config():
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Absolute script_location so the CLI works from any working directory
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate(target: str) -> int:
    """Run database migrations."""
    from alembic import command

    logger.info("Running database migrations to %s...", target)
    command.upgrade(_get_alembic_config(), target)
    logger.info("Migrations complete")
    return 0


async def _refresh_stats() -> None:
    from core.database import create_engine, create_session_maker, dispose_engine
    from services.dashboard_service import refresh_dashboard_stats

    engine = create_engine()
    try:
        result = await refresh_dashboard_stats(create_session_maker(engine))
    finally:
        await dispose_engine(engine)

    logger.info(
        "Stored snapshot for %d-%02d: %d services, %d clients",
        result.year,
        result.month,
        result.services.total,
        result.clients.total,
    )


def cmd_refresh_stats() -> int:
    """Recompute the current month's dashboard snapshot."""
    asyncio.run(_refresh_stats())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Field service API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate = subparsers.add_parser("migrate", help="Run database migrations")
    migrate.add_argument(
        "target", nargs="?", default="head", help="Target revision (default: head)"
    )
    subparsers.add_parser(
        "refresh-stats",
        help="Recompute and store the current month's dashboard snapshot",
    )

    args = parser.parse_args(argv)

    if args.command == "migrate":
        return cmd_migrate(args.target)
    elif args.command == "refresh-stats":
        return cmd_refresh_stats()
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
