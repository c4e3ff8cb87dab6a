"""
Fallback sweeper - reassigns priority leads nobody acted on.

Runs every fallback_sweep_interval_seconds (hourly by default). A lead whose
priority window has passed while still submitted/routed is offered to the
request's fallback businesses.
"""
import asyncio
import logging
from datetime import datetime, timezone

from leadrouter.config import get_settings
from leadrouter.services.reassignment import SweepResult, run_fallback_sweep

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "leadrouter:worker_health:fallback_sweeper"


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        from leadrouter.utils.redis import get_redis
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=max(600, get_settings().fallback_sweep_interval_seconds * 2),
        )
    except Exception as e:
        logger.debug("Fallback sweeper heartbeat failed: %s", str(e))


async def sweep_once() -> SweepResult:
    """One sweep in its own session."""
    from leadrouter.database import async_session_factory

    async with async_session_factory() as db:
        return await run_fallback_sweep(db)


async def run_fallback_sweeper():
    """Main sweeper loop. Runs until cancelled."""
    interval = get_settings().fallback_sweep_interval_seconds
    logger.info("Fallback sweeper started (interval=%ds)", interval)

    while True:
        try:
            result = await sweep_once()
            if result.processed_count > 0:
                logger.info(
                    "Fallback sweeper processed %d expired leads, assigned %d",
                    result.processed_count, result.assigned_count,
                )
        except Exception as e:
            logger.error("Fallback sweeper error: %s", str(e), exc_info=True)

        await _heartbeat()
        await asyncio.sleep(interval)
