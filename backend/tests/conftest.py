"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient

from ledger.core import config
from ledger.main import app
from ledger.models import Base
from ledger.db.session import get_db
from ledger.services import email as email_module
from tests.factories import FrozenClock


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state.
    StaticPool keeps every session on the one in-memory database.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test engine (used by the reminder sweep)."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FrozenClock:
    """
    Controllable clock.

    WHY: Overdue detection and reminder windows depend on the current
    time; tests pin it and move it explicitly.
    """
    return FrozenClock()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server.

    Yields:
        AsyncClient: HTTP client for making test requests
    """
    from httpx import ASGITransport

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers() -> dict:
    """Headers identifying the default test owner."""
    return {"X-Owner-Id": "1"}


@pytest.fixture(autouse=True)
def disable_reminder_sweep(monkeypatch):
    """
    Keep the background reminder sweep out of tests.

    WHY: The sweep uses the production session factory; tests drive it
    explicitly with their own.
    """
    monkeypatch.setattr(config.settings, "REMINDER_SWEEP_ENABLED", False)


@pytest.fixture(autouse=True)
def use_mock_email_provider(monkeypatch):
    """
    Use mock email provider for all tests.

    WHY: Tests should not send real emails. The mock provider tracks sent
    emails for verification and doesn't require API keys.
    """
    email_module.MockEmailProvider.clear_sent_emails()
    monkeypatch.setattr(config.settings, "RESEND_API_KEY", None)
    monkeypatch.setattr(email_module, "_email_service", None)

    yield

    email_module.MockEmailProvider.clear_sent_emails()
