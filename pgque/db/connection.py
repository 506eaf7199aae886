"""
Database connection management.
Handles async SQLAlchemy engine creation.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from pgque.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """
    Create an async database engine from settings.

    Every claimed job pins one pooled connection for as long as it is
    being worked, so the pool must be at least as large as the number of
    workers sharing the engine.

    Args:
        settings: Settings to use. Defaults to the cached settings.

    Returns:
        AsyncEngine: A new SQLAlchemy async engine.
    """
    settings = settings or get_settings()
    return create_async_engine(
        settings.database_url,
        pool_size=max(settings.database_pool_size, settings.worker_count),
        max_overflow=settings.database_max_overflow,
        echo=settings.log_level == "DEBUG",
        pool_pre_ping=True,
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the process-wide async database engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        _engine = create_engine()
        logger.info("Database engine created")
    return _engine


def get_test_engine(database_url: str) -> AsyncEngine:
    """
    Create a test database engine with NullPool.

    With NullPool every checkout opens a new server session, which keeps
    advisory locks from leaking between tests through pooled connections.

    Args:
        database_url: The database URL for testing.

    Returns:
        AsyncEngine: The test SQLAlchemy async engine instance.
    """
    return create_async_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
    )


async def close_db() -> None:
    """
    Dispose of the process-wide engine.
    Should be called on shutdown.
    """
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database connection closed")
