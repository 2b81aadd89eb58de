"""Durable record of issued refresh, reset-password and verify-email tokens."""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from functools import wraps
from typing import Any, ParamSpec, TypeVar
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.models.token import PERSISTED_TOKEN_TYPES, Token, TokenType
from tokengate.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def translate_store_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Surface connectivity failures as StoreUnavailableError."""

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except (OperationalError, InterfaceError, OSError) as e:
            logger.warning(f"Token store unavailable during {func.__name__}: {e}")
            raise StoreUnavailableError("Token store unavailable") from e

    return wrapper


class TokenStore:
    """Token rows behind an async session.

    The store flushes on its own and commits only when the owning service
    calls `commit`, so transaction boundaries stay with the service. It also never interprets a blacklisted or
    missing row, that decision belongs to the caller.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @translate_store_errors
    async def insert(self, row: Token) -> UUID:
        """Persist a token row and return its id."""
        if row.type not in PERSISTED_TOKEN_TYPES:
            raise ValueError(f"{row.type.value} tokens are never persisted")
        self.session.add(row)
        await self.session.flush()
        return row.id

    @translate_store_errors
    async def find(self, value: str, token_type: TokenType, subject_id: UUID) -> Token | None:
        """Return the row matching value, type and subject, blacklisted or not."""
        result = await self.session.execute(
            select(Token).where(
                Token.value == value,
                Token.type == token_type,
                Token.subject_id == subject_id,
            )
        )
        return result.scalar_one_or_none()

    @translate_store_errors
    async def consume(self, value: str, token_type: TokenType, subject_id: UUID) -> bool:
        """Delete a live row in a single conditional statement.

        Returns True only for the caller whose DELETE removed the row, so two
        concurrent presentations of the same token cannot both succeed.
        """
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(Token)
            .where(
                Token.value == value,
                Token.type == token_type,
                Token.subject_id == subject_id,
                Token.blacklisted.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @translate_store_errors
    async def delete_all_for_subject(
        self, subject_id: UUID, token_type: TokenType | None = None
    ) -> int:
        """Delete every row of a subject, optionally limited to one type."""
        stmt = delete(Token).where(Token.subject_id == subject_id)
        if token_type is not None:
            stmt = stmt.where(Token.type == token_type)
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount

    @translate_store_errors
    async def delete_by_value(self, value: str, token_type: TokenType | None = None) -> int:
        stmt = delete(Token).where(Token.value == value)
        if token_type is not None:
            stmt = stmt.where(Token.type == token_type)
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount

    @translate_store_errors
    async def mark_blacklisted(self, value: str) -> None:
        """Flag a row as blacklisted. Calling it twice is harmless."""
        await self.session.execute(
            update(Token)
            .where(Token.value == value)
            .values(blacklisted=True)
            .execution_options(synchronize_session=False)
        )

    @translate_store_errors
    async def delete_expired(self, now: datetime | None = None) -> int:
        """Remove rows past their expiry. Housekeeping only."""
        cutoff = now or datetime.now(UTC)
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(Token)
            .where(Token.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @translate_store_errors
    async def commit(self) -> None:
        """Commit the owning session's transaction."""
        await self.session.commit()
