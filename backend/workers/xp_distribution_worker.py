"""Weekly XP distribution worker.

Settles one week of XP (the current week by default) for every wallet with
swaps, or for a single wallet:

    python -m workers.xp_distribution_worker
    python -m workers.xp_distribution_worker --week-start 2026-10-05 --wallet 0xabc
    python -m workers.xp_distribution_worker --with-last-week

Exits 1 when any wallet failed or could not be persisted.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from typing import Optional, Sequence

_BACKEND = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND not in sys.path:
    sys.path.insert(0, _BACKEND)
if os.getcwd() != _BACKEND:
    os.chdir(_BACKEND)

from config import settings
from models.database import init_database
from services.xp.week import week_range_for
from services.xp_distribution import DistributionSummary, build_sql_job
from utils.logger import get_logger, setup_logging

logger = get_logger("xp_distribution_worker")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Distribute weekly XP from swap activity.")
    parser.add_argument(
        "--week-start",
        help="Any date (YYYY-MM-DD) inside the week to settle; defaults to the current week.",
    )
    parser.add_argument("--wallet", help="Only settle this wallet address.")
    parser.add_argument(
        "--with-last-week",
        action="store_true",
        help="Re-settle last week before the current week. Ignores --week-start.",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON, log_file=settings.LOG_FILE)

    await init_database()
    logger.info("Database initialized")

    job = build_sql_job()
    summaries: list[DistributionSummary]
    if args.with_last_week:
        summaries = await job.run_current_and_last_week(wallet_address=args.wallet)
    else:
        week = week_range_for(args.week_start) if args.week_start else None
        summaries = [await job.run(week, wallet_address=args.wallet)]

    failed = [s for s in summaries if s.has_failures]
    for summary in failed:
        for outcome in summary.outcomes:
            if not outcome.settled:
                logger.warning(
                    "Wallet not settled",
                    week=summary.week.label(),
                    wallet=outcome.wallet_address,
                    status=outcome.status,
                    error=outcome.error,
                )
    return 1 if failed else 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
