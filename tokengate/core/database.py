"""Async SQLAlchemy plumbing for the token and principal stores."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from tokengate.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options() -> dict[str, Any]:
    # SQLite uses a single-connection pool that rejects sizing arguments
    if settings.is_sqlite:
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


def enable_sqlite_foreign_keys(target: AsyncEngine) -> None:
    """Turn on FOREIGN KEY enforcement for every new SQLite connection.

    Token rows reference users with ON DELETE CASCADE, which SQLite
    ignores unless the pragma is set per connection.
    """

    @event.listens_for(target.sync_engine, "connect")
    def _set_pragma(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug and settings.log_level == "DEBUG",
    **_engine_options(),
)
if settings.is_sqlite:
    enable_sqlite_foreign_keys(engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back otherwise."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            # BaseException also covers asyncio.CancelledError
            await session.rollback()
            raise


async def check_db_connection() -> bool:
    """Return True when a trivial query round-trips."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (OSError, SQLAlchemyError) as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


async def create_tables() -> None:
    """Create the users and tokens tables if they do not exist."""
    import tokengate.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
