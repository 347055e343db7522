#!/usr/bin/env python3
"""
Subscription Expiry Sweep

Expires subscriptions past their end date, promotes queued subscriptions,
and cancels purchases whose payment session lapsed unpaid.

Runs once with --once, otherwise every SWEEP_INTERVAL_SECONDS.
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from sqlalchemy.exc import SQLAlchemyError

from leadhub.db.session import close_engines, get_write_session
from leadhub.models.domain import ExpirySweepResult
from leadhub.observability import setup_logging
from leadhub.services.ledger import LedgerService

logger = structlog.get_logger()

SWEEP_INTERVAL_SECONDS = 300


async def sweep() -> ExpirySweepResult:
    """Run one expiry sweep."""
    async with get_write_session() as session:
        return await LedgerService(session).expire_subscriptions()


async def run_loop() -> None:
    """Sweep forever; a failed sweep is logged and retried next interval."""
    logger.info("expiry_sweeper_started", interval_seconds=SWEEP_INTERVAL_SECONDS)

    while True:
        try:
            await sweep()
        except SQLAlchemyError as e:
            logger.error("expiry_sweep_failed", error=str(e), exc_info=True)

        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)


async def run(once: bool) -> None:
    try:
        if once:
            await sweep()
        else:
            await run_loop()
    finally:
        await close_engines()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Expire lapsed LeadHub subscriptions")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    args = parser.parse_args()

    setup_logging()
    try:
        asyncio.run(run(args.once))
    except KeyboardInterrupt:
        logger.info("expiry_sweeper_stopped")
        sys.exit(0)


if __name__ == "__main__":
    main()
