"""
Database Configuration and Session Management

This module sets up SQLAlchemy for database operations with
async support and connection pooling.
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from devicehub.config import settings


def async_database_url(url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg://, leave other drivers alone."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


DATABASE_URL = async_database_url(settings.DATABASE_URL)

engine_kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
if DATABASE_URL.startswith("postgresql"):
    engine_kwargs.update(pool_size=5, max_overflow=10)

# Create async engine
engine = create_async_engine(DATABASE_URL, **engine_kwargs)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """
    Dependency for getting database sessions.

    Usage in FastAPI endpoints:
        @app.get("/devices/me")
        async def get_device(db: AsyncSession = Depends(get_db)):
            ...

    Uncommitted work is rolled back when the request ends, so a failed
    request never leaves a partial write behind.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
