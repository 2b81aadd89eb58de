"""Per-request authentication and authorization.

A request moves through three steps:

    AttemptAccess  -> verify the access token on its own (no store access)
    AttemptRotate  -> on any access failure, rotate with the refresh token
    Authorize      -> check required rights, or the self-access override

The gate keeps nothing between requests. The only shared state it touches
is the token store, through TokenService.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.core.roles import Right, rights_for
from tokengate.models.user import Principal
from tokengate.services.errors import (
    ForbiddenError,
    ReusedRefreshTokenError,
    StoreUnavailableError,
    TokenBlacklistedError,
    TokenError,
    TokenExpiredError,
    UnauthenticatedError,
)
from tokengate.services.token import AuthTokenPair, TokenService
from tokengate.services.token_store import translate_store_errors
from tokengate.services.user import UserService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateResult:
    """Outcome of a successful check.

    `rotated` holds a new token pair when the refresh token was used; the
    transport must write it back to the client.
    """

    principal: Principal
    rotated: AuthTokenPair | None = None


def _failure_reason(error: Exception) -> str:
    if isinstance(error, ReusedRefreshTokenError):
        return "refresh_token_reused"
    if isinstance(error, TokenBlacklistedError):
        return "refresh_token_blacklisted"
    if isinstance(error, TokenExpiredError):
        return "token_expired"
    if isinstance(error, StoreUnavailableError):
        return "store_unavailable"
    return "invalid_token"


class AuthGate:
    """Authenticates a principal from transport tokens and enforces rights."""

    def __init__(
        self,
        session: AsyncSession,
        tokens: TokenService | None = None,
        users: UserService | None = None,
    ):
        self.session = session
        self.users = users or UserService(session)
        self.tokens = tokens or TokenService(session, users=self.users)

    @translate_store_errors
    async def _resolve(self, subject_id: UUID) -> Principal | None:
        user = await self.users.find_by_id(subject_id)
        return user.to_principal() if user is not None else None

    async def _attempt_access(self, access_token: str) -> Principal | None:
        try:
            payload = self.tokens.verify_access_token(access_token)
        except TokenError as e:
            logger.debug(f"Access token rejected ({_failure_reason(e)}), trying refresh")
            return None
        principal = await self._resolve(payload.subject)
        if principal is None:
            logger.debug(f"Access token subject {payload.subject} no longer exists")
        return principal

    async def _attempt_rotate(self, refresh_token: str | None) -> GateResult:
        if not refresh_token:
            raise UnauthenticatedError("no_credentials")

        try:
            pair = await self.tokens.refresh_auth(refresh_token)
        except (ReusedRefreshTokenError, TokenBlacklistedError, StoreUnavailableError) as e:
            reason = _failure_reason(e)
            logger.warning(f"Refresh rejected: {reason}", extra={"reason": reason})
            raise UnauthenticatedError(reason) from e
        except TokenError as e:
            reason = _failure_reason(e)
            logger.debug(f"Refresh rejected: {reason}")
            raise UnauthenticatedError(reason) from e

        payload = self.tokens.verify_access_token(pair.access.token)
        try:
            principal = await self._resolve(payload.subject)
        except StoreUnavailableError as e:
            logger.warning("Principal lookup failed: store unavailable")
            raise UnauthenticatedError("store_unavailable") from e
        if principal is None:
            raise UnauthenticatedError("principal_not_found")
        return GateResult(principal=principal, rotated=pair)

    async def authenticate(
        self, access_token: str | None, refresh_token: str | None
    ) -> GateResult:
        """Resolve the principal, rotating the pair when the access token is unusable.

        Raises UnauthenticatedError with a diagnostic `reason`.
        """
        if access_token:
            try:
                principal = await self._attempt_access(access_token)
            except StoreUnavailableError as e:
                logger.warning("Principal lookup failed: store unavailable")
                raise UnauthenticatedError("store_unavailable") from e
            if principal is not None:
                return GateResult(principal=principal)
        return await self._attempt_rotate(refresh_token)

    @staticmethod
    def authorize(
        principal: Principal,
        required: Iterable[Right | str] = (),
        resource_owner: UUID | None = None,
    ) -> None:
        """Raise ForbiddenError unless the principal may proceed.

        A principal always passes for resources it owns, whatever rights
        the route requires.
        """
        required_rights = {Right(r) for r in required}
        if not required_rights:
            return
        if required_rights <= rights_for(principal.role):
            return
        if resource_owner is not None and resource_owner == principal.id:
            return
        logger.warning(
            f"Forbidden: {principal.id} ({principal.role.value}) lacks "
            f"{sorted(r.value for r in required_rights)}"
        )
        raise ForbiddenError()

    async def check(
        self,
        access_token: str | None,
        refresh_token: str | None,
        required: Iterable[Right | str] = (),
        resource_owner: UUID | None = None,
    ) -> GateResult:
        """Authenticate then authorize a single request."""
        result = await self.authenticate(access_token, refresh_token)
        self.authorize(result.principal, required, resource_owner)
        return result
