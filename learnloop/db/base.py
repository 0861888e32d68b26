"""Database base class and session management.

This module provides:
- SQLAlchemy base class for declarative models
- Async engine and session factory construction
- A process-level default engine for the application entry point
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ..core.config import Settings, get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create an async engine; pool options are skipped for SQLite."""
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used for every request."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# =============================================================================
# Default engine (application entry point)
# =============================================================================

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Get or create the default database engine."""
    global _engine

    if _engine is None:
        _engine = create_engine_from_settings(get_settings())

    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the default session maker."""
    global _session_maker

    if _session_maker is None:
        _session_maker = create_session_maker(get_engine())

    return _session_maker


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Get a database session from the default engine as an async context manager."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        yield session


async def init_database(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables on the given (or default) engine."""
    from . import models  # noqa: F401  registers the mappers

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_all() -> None:
    """Close the default engine's connections."""
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
    _session_maker = None
