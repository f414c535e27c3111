# src/runboard/db/session.py

"""Database session management."""
import logging
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from runboard.config import Settings, settings
from runboard.db.monitor import PoolMonitor

logger = logging.getLogger(__name__)


def _connect_args(config: Settings) -> dict[str, Any]:
    """Driver arguments for asyncpg connections."""
    args: dict[str, Any] = {
        "timeout": config.connect_timeout,
        # Transaction-mode poolers (pgbouncer, Supabase) reject prepared
        # statement caching
        "statement_cache_size": 0,
    }
    if config.db_ssl != "disable":
        args["ssl"] = config.db_ssl
    return args


def create_engine_from_settings(config: Settings) -> AsyncEngine:
    """Create the async engine with appropriate configuration.

    SQLite doesn't support connection pooling, so we only configure
    pool settings for other databases like PostgreSQL.
    """
    url = config.store_url

    # SQLite doesn't support connection pooling
    if config.is_sqlite:
        return create_async_engine(url, echo=config.db_echo)

    # Bounded pool: callers queue for up to pool_timeout, never overflow
    return create_async_engine(
        url,
        pool_size=config.pool_size,
        max_overflow=0,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,  # Verify connections before use
        echo=config.db_echo,
        connect_args=_connect_args(config) if url.drivername.endswith("asyncpg") else {},
    )


# The engine is the core interface to the database.
engine = create_engine_from_settings(settings)

# Pool event logging and occupancy for the health probe
pool_monitor = PoolMonitor(engine)

# Create a configured "Session" class.
# autocommit=False: Transactions are committed manually.
# autoflush=False: Changes are not flushed to the database until explicitly committed.
# expire_on_commit=False: Objects remain accessible after commit.
AsyncSessionLocal = async_sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Automatically handles rollback on exceptions and ensures
    the session is properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error, rolling back: {e}")
            await session.rollback()
            raise


def get_engine() -> AsyncEngine:
    """FastAPI dependency returning the process-wide engine."""
    return engine


def get_pool_monitor() -> PoolMonitor:
    """FastAPI dependency returning the monitor attached to the engine."""
    return pool_monitor
