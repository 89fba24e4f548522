"""
Async SQLAlchemy engine and sessions.

Sessions are created with expire_on_commit=False: the relay reads a party,
commits a message record, then keeps using the party it already loaded.
A rollback still expires loaded rows, so flows copy the plain values they
need before their first write.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

_engine = None
_session_factory = None


class Base(DeclarativeBase):
    pass


def get_engine():
    global _engine
    if _engine is None:
        from safetalk.config import get_settings
        settings = get_settings()
        kwargs = {"echo": settings.app_env == "development"}
        if not settings.database_url.startswith("sqlite"):
            kwargs["pool_size"] = settings.database_pool_size
            kwargs["max_overflow"] = settings.database_max_overflow
            kwargs["pool_pre_ping"] = True
        _engine = create_async_engine(settings.database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency. The record store commits its own writes."""
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception as e:
            logger.debug("Request failed with open session, rolling back: %s", str(e))
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Standalone session for scripts. Disposes the engine on exit."""
    try:
        async with get_session_factory()() as session:
            yield session
    finally:
        await dispose_engine()


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
