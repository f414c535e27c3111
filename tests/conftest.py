# tests/conftest.py

"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

# The application engine is built on import; keep it off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from runboard.db.models import Base  # noqa: E402
from runboard.db.monitor import PoolMonitor  # noqa: E402
from runboard.db.session import get_db, get_engine, get_pool_monitor  # noqa: E402
from runboard.main import app  # noqa: E402
from runboard.services.presence import PresenceBroadcaster  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL)
AsyncTestingSessionLocal = async_sessionmaker(
    bind=engine, expire_on_commit=False, autocommit=False, autoflush=False
)


@pytest.fixture(scope="session", autouse=True)
async def setup_database():
    """Fixture to create and tear down the test database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Fixture to provide a transactional database session to a test.
    The transaction is rolled back after the test, ensuring isolation.
    """
    connection = await engine.connect()
    transaction = await connection.begin()
    session = AsyncTestingSessionLocal(bind=connection)

    yield session

    # After the test is done, roll back the transaction to clean up.
    await session.close()
    if transaction.is_active:
        await transaction.rollback()
    await connection.close()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Fixture to provide an async test client for the API."""

    # Override the get_db dependency to use the test database
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up the override after the test
    del app.dependency_overrides[get_db]


@pytest.fixture
def fatal_errors() -> list:
    """Collects errors a PoolMonitor would have terminated the process for."""
    return []


@pytest.fixture
async def probe_engine(
    fatal_errors: list,
) -> AsyncGenerator[tuple[AsyncEngine, PoolMonitor], None]:
    """A standalone engine and monitor, wired into the health endpoint."""
    probe = create_async_engine(TEST_DATABASE_URL)
    monitor = PoolMonitor(probe, on_fatal=fatal_errors.append)

    app.dependency_overrides[get_engine] = lambda: probe
    app.dependency_overrides[get_pool_monitor] = lambda: monitor

    yield probe, monitor

    del app.dependency_overrides[get_engine]
    del app.dependency_overrides[get_pool_monitor]
    await probe.dispose()


@pytest.fixture
def presence() -> PresenceBroadcaster:
    """Give the app a fresh viewer counter for each test."""
    broadcaster = PresenceBroadcaster()
    app.state.presence = broadcaster
    return broadcaster
