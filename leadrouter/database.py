"""
Database engine and sessions.

Service functions own their transactions: every lead transition commits
(or rolls back) inside the engine, so the request dependency never commits.
It only rolls back whatever a failed request left open.
"""
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leadrouter.config import get_settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict:
    options = {"pool_pre_ping": True}
    # SQLite (tests, local runs) has no connection pool to size
    if not url.startswith("sqlite"):
        settings = get_settings()
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_settings().database_url
        _engine = create_async_engine(url, **_engine_options(url))
        logger.info("Database engine created (%s)", url.split("://", 1)[0])
    return _engine


def async_session_factory() -> AsyncSession:
    """New session for code outside a request (webhooks, workers, scripts)."""
    global _session_maker
    if _session_maker is None:
        # Lead objects are used after commit to publish notifications
        _session_maker = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker()


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()
