"""
Database session management.

WHY: Async database sessions are required for FastAPI's async/await pattern.
Each request gets one session; it commits when the handler returns and
rolls back when it raises. The acceptance cascade is the exception: it
commits its own steps so that an accepted proposal is durable before any
sibling is touched.
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from homebid.core.config import settings


# Create async engine
# WHY: pool_pre_ping recycles stale connections in long-running workers
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

# Create session factory
# WHY: expire_on_commit=False keeps loaded proposals usable after the
# coordinator's intermediate commits
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
