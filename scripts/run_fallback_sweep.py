"""
Run one fallback sweep from cron or by hand.

Reassigns priority leads whose window expired to their fallback businesses.

Usage:
    python scripts/run_fallback_sweep.py
    python scripts/run_fallback_sweep.py --as-of 2026-01-15T12:00:00Z --batch-size 100
"""
import argparse
import asyncio
import logging
from datetime import datetime, timezone

from dateutil.parser import isoparse

from leadrouter.database import async_session_factory, dispose_engine
from leadrouter.services import lead_events
from leadrouter.services.reassignment import run_fallback_sweep

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def sweep(as_of: datetime | None, batch_size: int | None) -> int:
    try:
        async with async_session_factory() as session:
            result = await run_fallback_sweep(session, now=as_of, batch_size=batch_size)
        # Let provider emails go out before the loop closes
        await lead_events.drain()
    finally:
        await dispose_engine()

    logger.info(
        "Fallback sweep done: processed=%d assigned=%d failed=%d",
        result.processed_count, result.assigned_count, len(result.errors),
    )
    return 1 if result.errors else 0


def main():
    parser = argparse.ArgumentParser(description="Run one fallback lead sweep")
    parser.add_argument("--as-of", help="ISO timestamp to treat as now (default: current time)")
    parser.add_argument("--batch-size", type=int, help="Max expired leads to process")
    args = parser.parse_args()

    as_of = None
    if args.as_of:
        as_of = isoparse(args.as_of)
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)

    raise SystemExit(asyncio.run(sweep(as_of, args.batch_size)))


if __name__ == "__main__":
    main()
