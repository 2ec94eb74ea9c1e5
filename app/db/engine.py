# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine for the document record store. The pipeline and
# the FastAPI handlers share one event loop, so everything goes through
# `AsyncSession` (asyncpg driver in production).
#
# SESSION LIFECYCLE:
# 1. The record store opens a short-lived session per operation
# 2. Reads/writes the document row
# 3. Commits (or rolls back on error) and closes
#
# The engine is created lazily on first use so that importing the package
# (tests, the in-memory backend) never needs a database driver.
# =============================================================================

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.db.models import Base

# ---------------------------------------------------------------------------
# Async Engine — Lazy Initialization
# ---------------------------------------------------------------------------
# - echo=settings.debug: logs every SQL statement while debugging.
# - pool_size=5 / max_overflow=10: each worker holds at most one
#   connection at a time, plus the API handlers.
# ---------------------------------------------------------------------------

_async_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Lazily create and cache the async SQLAlchemy engine."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
        )
    return _async_engine


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Lazily create and cache the session factory.

    expire_on_commit=False keeps attributes readable on records after the
    session that loaded them has closed; the pipeline works on detached
    instances between store calls.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create the schema if it does not exist (run once at startup)."""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
