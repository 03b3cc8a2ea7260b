"""Command line entry point: ``survey-pulse sync-config``."""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from .database import AsyncSessionFactory, create_db_and_tables, engine
from .exceptions import ConfigValidationError
from .survey_config import DEFAULT_CONFIG_PATH, load_config
from .sync import SyncReport, summarize_report, sync_config

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="survey-pulse")
    commands = ap.add_subparsers(dest="command", required=True)

    sync = commands.add_parser(
        "sync-config", help="Apply the survey config file to the database."
    )
    sync.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f"Survey config YAML (default: {DEFAULT_CONFIG_PATH}).",
    )
    sync.add_argument(
        "--check",
        action="store_true",
        help="Only validate the config, write nothing.",
    )
    return ap.parse_args(argv)


async def run_sync(config_path: str) -> SyncReport:
    config = load_config(config_path)
    await create_db_and_tables()
    try:
        async with AsyncSessionFactory() as session:
            async with session.begin():
                return await sync_config(session, config)
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = parse_args(argv)

    try:
        if args.check:
            config = load_config(args.config)
            print(
                f"Config OK: {len(config.sections)} sections, "
                f"{len(config.questions)} questions"
            )
            return 0
        report = asyncio.run(run_sync(args.config))
    except ConfigValidationError as e:
        print("Config validation failed:", file=sys.stderr)
        for issue in e.issues:
            print(f"  - {issue}", file=sys.stderr)
        return 1

    for line in summarize_report(report):
        print(line)
    print("No changes." if report.changed == 0 else f"{report.changed} rows changed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
