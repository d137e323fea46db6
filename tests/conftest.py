"""Global pytest fixtures for habitpact.

Service and API tests run against a real async SQLite database created
per test, so transactions, constraints and rollbacks behave for real.
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from habitpact.challenges.config import ChallengeSettings
from habitpact.challenges.service import ChallengeLifecycleManager, get_lifecycle_manager
from habitpact.infrastructure.database.models import Base
from habitpact.infrastructure.database.session import create_session_factory


# ===========================================
# DATABASE FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'habitpact.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncMock, None]:
    """Mock async database session for unit tests."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    yield session


# ===========================================
# SERVICE FIXTURES
# ===========================================


@pytest.fixture
def challenge_settings() -> ChallengeSettings:
    return ChallengeSettings(storage_timeout_seconds=5.0, auto_complete_enabled=False)


@pytest.fixture
def manager(
    session_factory: async_sessionmaker[AsyncSession],
    challenge_settings: ChallengeSettings,
) -> ChallengeLifecycleManager:
    return ChallengeLifecycleManager(session_factory, settings=challenge_settings)


@pytest.fixture
def creator_id() -> UUID:
    return uuid4()


@pytest.fixture
def invitee_id() -> UUID:
    return uuid4()


# ===========================================
# HTTP CLIENT FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def async_client(manager: ChallengeLifecycleManager) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app whose lifecycle manager uses the test database."""
    from habitpact.main import create_app

    app = create_app()
    app.dependency_overrides[get_lifecycle_manager] = lambda: manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
