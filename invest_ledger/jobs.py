"""Scheduled ledger jobs: daily accrual sweep and chain deposit polling

Run from cron or a timer:
    python -m invest_ledger.jobs accrue [--day 2025-01-31]
    python -m invest_ledger.jobs poll-chain
"""

import argparse
import asyncio
import logging
from datetime import date
from typing import Dict, Optional

from invest_ledger.config import settings
from invest_ledger.infrastructure.clients.chain import PollResult, TronGridClient, poll_chain_deposits
from invest_ledger.infrastructure.database.session import SessionLocal
from invest_ledger.infrastructure.observability.logging import LogThrottle, setup_logging
from invest_ledger.services.accrual import complete_matured_investments, run_daily_sweep

logger = logging.getLogger(__name__)


def run_daily_job(day: Optional[date] = None) -> Dict[str, int]:
    """Accrue the day for every investment, then complete the ones that ended"""
    db = SessionLocal()
    try:
        report = run_daily_sweep(db, day)
        completed = complete_matured_investments(db)
        return {
            "investments_seen": report.investments_seen,
            "created": report.created,
            "skipped": report.skipped,
            "failures": report.failures,
            "completed": completed,
        }
    finally:
        db.close()


def run_chain_poll(
    client: Optional[TronGridClient] = None,
    throttle: Optional[LogThrottle] = None,
) -> PollResult:
    """
    One poll of the platform deposit address. Pass the same ``throttle`` to
    repeated polls so an API outage logs once per interval.
    """
    if not (client or settings.tron_deposit_address):
        logger.warning("TRON_DEPOSIT_ADDRESS not set, skipping chain poll")
        return PollResult()

    db = SessionLocal()
    try:
        return asyncio.run(poll_chain_deposits(db, client or TronGridClient(), throttle or LogThrottle()))
    finally:
        db.close()


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="invest-ledger-jobs", description=__doc__.splitlines()[0])
    subcommands = parser.add_subparsers(dest="command", required=True)

    accrue = subcommands.add_parser("accrue", help="Run the daily accrual sweep and expiry")
    accrue.add_argument("--day", type=date.fromisoformat, default=None, help="UTC day to accrue (YYYY-MM-DD)")

    subcommands.add_parser("poll-chain", help="Credit new on-chain deposits")

    args = parser.parse_args(argv)
    setup_logging(settings.log_level)

    if args.command == "accrue":
        summary = run_daily_job(args.day)
        logger.info("Daily job finished", extra=summary)
        return 1 if summary["failures"] else 0

    result = run_chain_poll()
    logger.info(
        "Chain poll finished",
        extra={
            "seen": result.seen,
            "credited": result.credited,
            "duplicates": result.duplicates,
            "unmatched": result.unmatched,
        },
    )
    return 1 if result.failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
