"""
Database session configuration.

The trip and pay-settings record store lives here: an async SQLAlchemy
engine (asyncpg on PostgreSQL in production, aiosqlite for local runs
and tests) and the session factory handed to the store services.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from driverpay.app.core.config import settings


def build_engine(database_url: str, **overrides) -> AsyncEngine:
    """
    Create an async engine for ``database_url``.

    Pool sizing only applies to server databases; SQLite URLs are created
    with the dialect defaults unless ``overrides`` say otherwise.
    """
    options = {"echo": settings.db_echo, "future": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    options.update(overrides)
    return create_async_engine(database_url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(settings.database_url)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
