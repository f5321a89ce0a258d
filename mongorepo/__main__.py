"""mongorepo CLI entry point."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv(Path.cwd() / ".env")

from mongorepo import __version__
from mongorepo.config import get_settings
from mongorepo.manager import MongoDbManager, sanitize_mongodb_url
from mongorepo.migrations import MigrationRecord
from mongorepo.observability import configure_logging, initialize_logfire

logger = logging.getLogger(__name__)


def _format_ms(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    settings = get_settings()
    data = settings.model_dump(mode="json")
    data["mongo"]["url"] = sanitize_mongodb_url(settings.mongo.url)
    if data.get("logfire_token"):
        data["logfire_token"] = "***"
    print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
    return 0


async def _ping() -> bool:
    settings = get_settings()
    async with await MongoDbManager.connect(settings.mongo) as manager:
        return await manager.ping()


def cmd_ping(args: argparse.Namespace) -> int:
    """Check the MongoDB connection."""
    try:
        healthy = asyncio.run(_ping())
    except Exception as e:
        logger.error(f"Failed to connect: {e}")
        return 1

    print("MongoDB connection: " + ("OK" if healthy else "FAILED"))
    return 0 if healthy else 1


async def _load_ledger() -> list[MigrationRecord]:
    settings = get_settings()
    async with await MongoDbManager.connect(settings.mongo) as manager:
        ledger = await manager.get_repository(
            settings.mongo.ledger_collection, MigrationRecord
        )
        return await ledger.get_all()


def cmd_ledger(args: argparse.Namespace) -> int:
    """Display the migration ledger."""
    try:
        records = asyncio.run(_load_ledger())
    except Exception as e:
        logger.error(f"Failed to read migration ledger: {e}", exc_info=args.debug)
        return 1

    if not records:
        print("No migrations recorded.")
        return 0

    print(f"{'ID':<40} {'STATUS':<11} {'STARTED':<20} {'ENDED':<20}")
    for record in sorted(records, key=lambda r: r.start_date):
        print(
            f"{record.id:<40} {record.status:<11} "
            f"{_format_ms(record.start_date):<20} {_format_ms(record.end_date):<20}"
        )

    failed = [record.id for record in records if not record.succeeded]
    if failed:
        print(f"\n{len(failed)} migration(s) need manual repair: {', '.join(failed)}")
        return 1
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="mongorepo: typed MongoDB repositories and migrations",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mongorepo {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_config = subparsers.add_parser("config", help="Display merged configuration")
    parser_config.set_defaults(func=cmd_config)

    parser_ping = subparsers.add_parser("ping", help="Check the MongoDB connection")
    parser_ping.set_defaults(func=cmd_ping)

    parser_ledger = subparsers.add_parser("ledger", help="Display the migration ledger")
    parser_ledger.set_defaults(func=cmd_ledger)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    settings = get_settings()
    configure_logging(settings)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    initialize_logfire(settings)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
