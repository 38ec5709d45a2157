# waveorder/db/database.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from typing import AsyncGenerator

from waveorder.core.config import settings
from waveorder.core.logging import logger


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; pooled for PostgreSQL, plain for SQLite"""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=settings.DEBUG)

    return create_async_engine(
        database_url.replace("postgresql://", "postgresql+asyncpg://"),
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


# Create async engine
engine = build_engine(settings.DATABASE_URL)

# Create async session factory
async_session_local = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session_local() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database (create tables)"""
    from waveorder.db.base import Base
    # Import all models to ensure they're registered
    import waveorder.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db():
    """Close database connections"""
    await engine.dispose()
