"""Async database engine with connection pooling.

Provides the async SQLAlchemy engine and session factory the signal
repository reads through. PostgreSQL in production, SQLite in
development and tests.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


# Global engine instance (lazy initialization)
_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine.

    Args:
        settings: Database settings. If None, loads from environment.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    settings = settings or get_database_settings()

    logger.info(
        "Creating async database engine",
        extra={"driver": settings.driver, "pool_size": settings.pool_size},
    )

    if settings.is_sqlite:
        # SQLite doesn't support connection pooling in the traditional sense
        pool_kwargs = {"poolclass": NullPool}
    else:
        pool_kwargs = {
            "pool_size": settings.pool_size,
            "max_overflow": settings.max_overflow,
            "pool_pre_ping": settings.pool_pre_ping,
        }

    engine = create_async_engine(
        settings.async_url,
        echo=settings.echo_sql,
        connect_args=settings.get_connect_args(),
        **pool_kwargs,
    )

    if settings.is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # WAL mode for concurrent readers
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """
    Get or create the global async engine instance.

    Args:
        settings: Optional database settings.

    Returns:
        AsyncEngine: The global async engine instance.
    """
    global _async_engine

    if _async_engine is None:
        _async_engine = create_engine(settings)

    return _async_engine


def get_async_session_factory(
    settings: Optional[DatabaseSettings] = None
) -> async_sessionmaker[AsyncSession]:
    """
    Get or create the global async session factory.

    Args:
        settings: Optional database settings.

    Returns:
        async_sessionmaker: The global session factory.
    """
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = get_session_factory(get_async_engine(settings))

    return _async_session_factory


async def init_database(settings: Optional[DatabaseSettings] = None) -> None:
    """
    Create the signal tables for a SQLite development database.

    For PostgreSQL the tables belong to the hosted data platform.
    """
    settings = settings or get_database_settings()

    if not settings.is_sqlite:
        logger.info("PostgreSQL detected - signal tables are owned by the data platform")
        return

    from database.models import Base

    engine = get_async_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("SQLite signal tables initialized")


async def close_database() -> None:
    """
    Close the database engine and cleanup connections.

    Should be called during application shutdown.
    """
    global _async_engine, _async_session_factory

    if _async_engine is not None:
        logger.info("Closing database engine")
        await _async_engine.dispose()
        _async_engine = None
        _async_session_factory = None
