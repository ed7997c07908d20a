"""
Database configuration and session management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from authengine.core.config import settings


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def create_engine(dsn: Optional[str] = None) -> AsyncEngine:
    """
    Create an async engine.

    Pool sizing only applies to server databases; SQLite uses the driver default pool.
    """
    dsn = dsn or settings.database.dsn
    if dsn.startswith("sqlite"):
        return create_async_engine(dsn, echo=settings.app.app_debug)
    return create_async_engine(
        dsn,
        echo=settings.app.app_debug,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by the configuration service."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def get_db_context(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session as a context manager.

    Example:
        async with get_db_context(factory) as session:
            result = await session.execute(query)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables if they don't exist)."""
    async with engine.begin() as conn:
        # Import all models here to ensure they are registered with Base
        from authengine.models import authentication  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
