"""
Tests for leadrouter/workers/fallback_sweeper.py - the in-process sweep loop.
"""
import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest

from leadrouter.services.reassignment import SweepResult
from leadrouter.workers import fallback_sweeper


class TestSweepOnce:
    async def test_uses_own_session(self, db):
        @asynccontextmanager
        async def _factory():
            yield db

        with patch("leadrouter.database.async_session_factory", _factory):
            result = await fallback_sweeper.sweep_once()

        assert result == SweepResult()


class TestHeartbeat:
    async def test_sets_key_with_ttl(self, mock_redis):
        await fallback_sweeper._heartbeat()
        args, kwargs = mock_redis.set.call_args
        assert args[0] == fallback_sweeper.HEARTBEAT_KEY
        assert kwargs["ex"] >= 600

    async def test_redis_failure_is_swallowed(self, mock_redis):
        mock_redis.set.side_effect = ConnectionError("redis down")
        await fallback_sweeper._heartbeat()


class TestSweeperLoop:
    async def test_error_does_not_stop_loop(self, mock_redis):
        sweep = AsyncMock(side_effect=[RuntimeError("db down"), SweepResult(processed_count=1, assigned_count=2)])
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

        with patch.object(fallback_sweeper, "sweep_once", sweep), \
                patch.object(fallback_sweeper.asyncio, "sleep", sleep):
            with pytest.raises(asyncio.CancelledError):
                await fallback_sweeper.run_fallback_sweeper()

        assert sweep.await_count == 2
        assert mock_redis.set.await_count == 2
