"""Token issuance, verification, rotation and reuse detection.

Refresh tokens are single use. Each one is persisted when issued and
deleted when consumed, so a validly signed refresh token with no row is
one that was already rotated: presenting it again means the token leaked,
and every refresh token of that subject is revoked.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.core import settings
from tokengate.models.token import Token, TokenType
from tokengate.models.user import Principal
from tokengate.services.errors import (
    PrincipalNotFoundError,
    ReusedRefreshTokenError,
    TokenBlacklistedError,
    TokenNotFoundError,
)
from tokengate.services.signer import Signer, TokenPayload, get_signer
from tokengate.services.token_store import TokenStore
from tokengate.services.user import UserService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthTokenPair:
    """Access and refresh tokens issued together. Only refresh is stored."""

    access: IssuedToken
    refresh: IssuedToken


class TokenService:
    """Service for token lifecycle operations."""

    def __init__(
        self,
        session: AsyncSession,
        signer: Signer | None = None,
        store: TokenStore | None = None,
        users: UserService | None = None,
    ):
        self.session = session
        self.signer = signer or get_signer()
        self.store = store or TokenStore(session)
        self.users = users or UserService(session)

    def _sign(self, subject_id: UUID, ttl: timedelta, token_type: TokenType) -> IssuedToken:
        now = datetime.now(UTC)
        payload = TokenPayload(
            subject=subject_id,
            issued_at=now,
            expires_at=now + ttl,
            type=token_type,
        )
        return IssuedToken(token=self.signer.sign(payload), expires_at=payload.expires_at)

    async def _issue_persisted(
        self, subject_id: UUID, ttl: timedelta, token_type: TokenType
    ) -> IssuedToken:
        issued = self._sign(subject_id, ttl, token_type)
        await self.store.insert(
            Token(
                value=issued.token,
                subject_id=subject_id,
                type=token_type,
                expires_at=issued.expires_at,
            )
        )
        return issued

    async def generate_auth_tokens(self, principal_id: UUID) -> AuthTokenPair:
        """Issue an access/refresh pair; the refresh row is committed first."""
        access = self._sign(
            principal_id,
            timedelta(minutes=settings.jwt_access_token_expire_minutes),
            TokenType.ACCESS,
        )
        refresh = await self._issue_persisted(
            principal_id,
            timedelta(days=settings.jwt_refresh_token_expire_days),
            TokenType.REFRESH,
        )
        await self.store.commit()
        return AuthTokenPair(access=access, refresh=refresh)

    def verify_access_token(self, value: str) -> TokenPayload:
        """Verify an access token without touching the store."""
        return self.signer.verify(value, expected_type=TokenType.ACCESS)

    async def verify_token(self, value: str, token_type: TokenType) -> Token:
        """Verify a persisted token and return its row.

        Raises:
            InvalidSignatureError / TokenExpiredError: from the signer.
            TokenBlacklistedError: the row was blacklisted.
            ReusedRefreshTokenError: a consumed refresh token was replayed;
                the subject's refresh tokens have been revoked.
            TokenNotFoundError: a reset or verify-email token has no row.
        """
        payload = self.signer.verify(value, expected_type=token_type)
        row = await self.store.find(value, token_type, payload.subject)

        if row is not None and row.blacklisted:
            logger.warning(f"Blacklisted {token_type.value} token presented for {payload.subject}")
            raise TokenBlacklistedError("This token is blacklisted")

        if row is None:
            if token_type is TokenType.REFRESH:
                await self._revoke_family(value, payload)
                raise ReusedRefreshTokenError(
                    "Refresh token unavailable. You need to perform the sign in again."
                )
            raise TokenNotFoundError(f"{token_type.value} token not found")

        return row

    async def _revoke_family(self, value: str, replayed: TokenPayload) -> None:
        """Revoke every refresh token of the subject and pin the replayed one."""
        removed = await self.invalidate_family(replayed.subject, commit=False)
        # Later replays of the same string fail as blacklisted without
        # revoking the family again.
        try:
            await self.store.insert(
                Token(
                    value=value,
                    subject_id=replayed.subject,
                    type=TokenType.REFRESH,
                    expires_at=replayed.expires_at,
                    blacklisted=True,
                )
            )
            await self.store.commit()
        except IntegrityError:
            # A concurrent replay pinned the same value first
            await self.session.rollback()
            removed = await self.invalidate_family(replayed.subject)
        logger.warning(
            f"Refresh token reuse detected for {replayed.subject}; "
            f"revoked {removed} refresh token(s)"
        )

    async def invalidate_family(self, subject_id: UUID, commit: bool = True) -> int:
        """Delete every refresh token of a subject, forcing a new sign-in."""
        removed = await self.store.delete_all_for_subject(subject_id, TokenType.REFRESH)
        if commit:
            await self.store.commit()
        return removed

    async def refresh_auth(self, value: str) -> AuthTokenPair:
        """Rotate a refresh token into a fresh pair.

        Verification errors propagate unchanged.
        """
        row = await self.verify_token(value, TokenType.REFRESH)
        subject_id = row.subject_id

        if not await self.store.consume(value, TokenType.REFRESH, subject_id):
            # Another request consumed this token between lookup and delete
            payload = self.signer.verify(value, expected_type=TokenType.REFRESH)
            await self._revoke_family(value, payload)
            raise ReusedRefreshTokenError(
                "Refresh token unavailable. You need to perform the sign in again."
            )

        pair = await self.generate_auth_tokens(subject_id)
        logger.info(f"Rotated refresh token for {subject_id}")
        return pair

    async def generate_reset_password_token(self, email: str) -> str:
        user = await self.users.find_by_email(email)
        if user is None:
            raise PrincipalNotFoundError("No users found with this email")
        issued = await self._issue_persisted(
            user.id,
            timedelta(minutes=settings.jwt_reset_password_expire_minutes),
            TokenType.RESET_PASSWORD,
        )
        await self.store.commit()
        return issued.token

    async def generate_verify_email_token(self, principal: Principal) -> str:
        issued = await self._issue_persisted(
            principal.id,
            timedelta(minutes=settings.jwt_verify_email_expire_minutes),
            TokenType.VERIFY_EMAIL,
        )
        await self.store.commit()
        return issued.token

    async def logout(self, value: str) -> None:
        """Delete the refresh row if there is one. Never fails on a missing row."""
        removed = await self.store.delete_by_value(value, TokenType.REFRESH)
        await self.store.commit()
        if removed:
            logger.info("Refresh token revoked on logout")
