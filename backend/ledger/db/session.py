"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Using a context manager ensures proper connection cleanup and transaction
management: a request either commits every ledger change it made or none.
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ledger.core.config import settings


def _engine_options(url: str) -> dict:
    """Connection pool options; SQLite has no server-side pool to size."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


# Create async engine
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    **_engine_options(settings.async_database_url),
)

# Create session factory
# WHY: expire_on_commit=False prevents lazy-loading issues after commit.
# autoflush=False gives explicit control over when the aggregate is written.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    WHY: Each request gets its own session. On any exception the whole
    request transaction is rolled back, so callers never observe a
    partially-applied mutation.

    Yields:
        AsyncSession: Database session for the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
