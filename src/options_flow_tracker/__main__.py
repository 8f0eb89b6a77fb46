"""Command-line entry point.

Usage:
    python -m options_flow_tracker run
    python -m options_flow_tracker poll-once
    python -m options_flow_tracker top-movers --window 30 --limit 5
    python -m options_flow_tracker init-db
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Sequence

from options_flow_tracker.alerter.formatter import format_usd
from options_flow_tracker.config import Settings, get_settings
from options_flow_tracker.pipeline import Pipeline
from options_flow_tracker.storage.database import DatabaseManager
from options_flow_tracker.storage.store import FlowStore

logger = logging.getLogger("options_flow_tracker")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="options-flow-tracker",
        description="Poll options flow, persist trades, and fan out alerts.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Log alerts instead of sending them")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the poller and scheduled jobs until interrupted")
    sub.add_parser("poll-once", help="Run a single poll cycle and exit")
    sub.add_parser("init-db", help="Create database tables")

    movers = sub.add_parser("top-movers", help="Print the trailing-window leaderboard")
    movers.add_argument("--window", type=int, default=30, help="Window in minutes")
    movers.add_argument("--limit", type=int, default=5, help="Number of tickers")
    return parser


async def _run(settings: Settings) -> None:
    pipeline = Pipeline(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipeline.request_stop)
    await pipeline.run()


async def _poll_once(settings: Settings) -> None:
    pipeline = Pipeline(settings)
    await pipeline.start(schedule_jobs=False)
    try:
        result = await pipeline.poll_once()
        await pipeline.flush_progress()
        logger.info(
            "Cycle %s: fetched=%d persisted=%d duplicates=%d alerts=%d errors=%d",
            result.outcome.value,
            result.fetched,
            result.persisted,
            result.duplicates,
            result.alerts_sent,
            result.errors,
        )
    finally:
        await pipeline.stop()


async def _top_movers(settings: Settings, *, window: int, limit: int) -> list[str]:
    db = DatabaseManager(settings.database.url)
    try:
        rows = await FlowStore(db).top_movers(window, limit)
    finally:
        await db.dispose_async()
    return [f"#{i}: {row.ticker} — {format_usd(row.total_premium)}" for i, row in enumerate(rows, 1)]


async def _init_db(settings: Settings) -> None:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.dry_run:
        settings = settings.model_copy(update={"dry_run": True})
    configure_logging(settings)

    try:
        settings.validate_requirements(command=args.command)
    except ValueError as e:
        logger.error("%s", e)
        return 2

    if args.command == "run":
        asyncio.run(_run(settings))
    elif args.command == "poll-once":
        asyncio.run(_poll_once(settings))
    elif args.command == "top-movers":
        lines = asyncio.run(_top_movers(settings, window=args.window, limit=args.limit))
        if not lines:
            logger.info("No trades in the last %d minutes", args.window)
        for line in lines:
            sys.stdout.write(line + "\n")
    elif args.command == "init-db":
        asyncio.run(_init_db(settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
