"""Credential flows built on top of the token lifecycle."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.models.token import TokenType
from tokengate.models.user import Principal, User
from tokengate.services.errors import (
    InvalidCredentialsError,
    PrincipalNotFoundError,
    TokenNotFoundError,
)
from tokengate.services.notification import Notifier, get_notifier
from tokengate.services.token import AuthTokenPair, TokenService
from tokengate.services.user import UserService, hash_password, verify_password

logger = logging.getLogger(__name__)

# Verified against when the email is unknown so both failure paths cost
# one argon2 verification.
_DUMMY_HASH = hash_password("tokengate-dummy-password")


class AuthService:
    """Service for login, logout, password reset and email verification."""

    def __init__(
        self,
        session: AsyncSession,
        tokens: TokenService | None = None,
        users: UserService | None = None,
        notifier: Notifier | None = None,
    ):
        self.session = session
        self.users = users or UserService(session)
        self.tokens = tokens or TokenService(session, users=self.users)
        self.notifier = notifier or get_notifier()

    async def login_with_email_and_password(self, email: str, password: str) -> User:
        """Authenticate a user and return the user object.

        Raises InvalidCredentialsError for both "user not found" and
        "wrong password" to prevent user enumeration.
        """
        user = await self.users.find_by_email(email)

        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentialsError("Incorrect email or password")

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Incorrect email or password")

        return user

    async def login_with_token(self, refresh_token: str) -> User:
        """Return the owner of a live refresh token without consuming it."""
        row = await self.tokens.verify_token(refresh_token, TokenType.REFRESH)
        return await self.users.get(row.subject_id)

    async def logout(self, refresh_token: str) -> None:
        await self.tokens.logout(refresh_token)

    async def refresh_auth(self, refresh_token: str) -> AuthTokenPair:
        return await self.tokens.refresh_auth(refresh_token)

    async def _consume_single_use(self, token: str, token_type: TokenType) -> User:
        """Verify a reset or verify-email token and delete it atomically.

        Only one caller can consume a given token; a concurrent loser gets
        TokenNotFoundError. Other tokens of the same type are dropped too.
        """
        row = await self.tokens.verify_token(token, token_type)
        subject_id = row.subject_id
        if not await self.tokens.store.consume(token, token_type, subject_id):
            raise TokenNotFoundError(f"{token_type.value} token already used")
        user = await self.users.find_by_id(subject_id)
        if user is None:
            raise PrincipalNotFoundError("User not found")
        await self.tokens.store.delete_all_for_subject(subject_id, token_type)
        return user

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """Set a new password; every token of the user is revoked with it.

        Raises TokenError subclasses for an unusable reset token.
        """
        user = await self._consume_single_use(reset_token, TokenType.RESET_PASSWORD)
        await self.users.update_password(user, new_password)

    async def verify_email(self, verify_token: str) -> None:
        user = await self._consume_single_use(verify_token, TokenType.VERIFY_EMAIL)
        await self.users.mark_email_verified(user)
        logger.info(f"Email verified for user: {user.id}")

    async def send_reset_password_link(self, email: str) -> None:
        """Issue a reset token and hand it to the notifier.

        Raises PrincipalNotFoundError when no user has this email.
        """
        token = await self.tokens.generate_reset_password_token(email)
        try:
            await self.notifier.send_reset_password_link(email, token)
        except Exception:
            logger.exception("Failed to send reset password link")

    async def send_verification_link(self, principal: Principal) -> None:
        token = await self.tokens.generate_verify_email_token(principal)
        try:
            await self.notifier.send_verification_link(principal.email, token)
        except Exception:
            logger.exception("Failed to send verification link")

