"""
Per-lead Redis lock - serializes accept, reject and payment webhooks on one lead.

Built on redis-py's Lock (token-checked release, TTL so a crashed holder
never wedges a lead). When Redis itself is unreachable the caller proceeds
unlocked and the lead row's version column rejects the losing write.
"""
import logging
import uuid
from contextlib import asynccontextmanager

from redis.exceptions import LockError, RedisError

from leadrouter.errors import InvalidState

logger = logging.getLogger(__name__)

LOCK_TTL_SECONDS = 30
LOCK_WAIT_SECONDS = 5
LOCK_POLL_INTERVAL = 0.1


def lock_key(lead_id: uuid.UUID) -> str:
    return f"leadrouter:lock:lead:{lead_id}"


@asynccontextmanager
async def lead_lock(
    lead_id: uuid.UUID,
    ttl: float = LOCK_TTL_SECONDS,
    wait: float = LOCK_WAIT_SECONDS,
):
    """
    Hold the lock for one lead while its state changes.

    Raises InvalidState when another request keeps the lead busy for
    longer than ``wait`` seconds.
    """
    from leadrouter.utils.redis import get_redis

    key = lock_key(lead_id)
    lock = None
    try:
        redis = await get_redis()
        lock = redis.lock(key, timeout=ttl, sleep=LOCK_POLL_INTERVAL, blocking_timeout=wait)
        acquired = await lock.acquire()
    except RedisError as e:
        logger.warning("Redis lock unavailable for %s: %s. Proceeding without lock.", key, str(e))
        lock = None
        acquired = True

    if not acquired:
        logger.warning("Lock wait timed out for lead %s", str(lead_id)[:8])
        raise InvalidState("Lead is being updated by another request, try again shortly")

    try:
        yield
    finally:
        if lock is not None:
            await _release(lock, key)


async def _release(lock, key: str) -> None:
    try:
        await lock.release()
    except LockError:
        # TTL ran out mid-transition; someone else may hold it now
        logger.warning("Lock %s expired before release", key)
    except RedisError as e:
        logger.warning("Redis lock release error for %s: %s", key, str(e))
