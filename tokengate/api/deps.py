"""Request authentication dependencies for protected routes."""

import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.core import get_db
from tokengate.core.roles import Right
from tokengate.models.user import Principal
from tokengate.services.cookies import CookieTransport
from tokengate.services.errors import ForbiddenError, UnauthenticatedError
from tokengate.services.gate import AuthGate
from tokengate.services.token import AuthTokenPair

logger = logging.getLogger(__name__)

UNAUTHENTICATED_DETAIL = "Please authenticate"
FORBIDDEN_DETAIL = "Forbidden"

OwnerExtractor = Callable[[Request], UUID | None]


class AuthRejected(Exception):
    """Terminal rejection of a request by the auth gate.

    Carries the rotated token pair, if any, so the cookies still reach the
    client when authorization fails after a successful rotation.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        rotated: AuthTokenPair | None = None,
        clear_cookies: bool = False,
    ):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.rotated = rotated
        self.clear_cookies = clear_cookies


async def auth_rejected_handler(request: Request, exc: AuthRejected) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    transport = CookieTransport()
    if exc.rotated is not None:
        transport.write(response, exc.rotated)
    elif exc.clear_cookies:
        transport.clear(response)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthRejected, auth_rejected_handler)  # type: ignore[arg-type]


def path_param(name: str) -> OwnerExtractor:
    """Resource-owner extractor reading a UUID path parameter.

    A missing or malformed parameter yields None, which never matches.
    """

    def extract(request: Request) -> UUID | None:
        raw = request.path_params.get(name)
        if raw is None:
            return None
        try:
            return raw if isinstance(raw, UUID) else UUID(str(raw))
        except ValueError:
            return None

    return extract


def get_cookie_transport() -> CookieTransport:
    return CookieTransport()


def require_auth(
    *rights: Right, owner: OwnerExtractor | None = None
) -> Callable[..., Awaitable[Principal]]:
    """Build a dependency that authenticates the request and checks rights.

    Usage:
        @router.get("/{user_id}")
        async def get_user(
            principal: Principal = Depends(
                require_auth(Right.GET_USERS, owner=path_param("user_id"))
            ),
        ): ...
    """

    async def dependency(
        request: Request,
        response: Response,
        db: AsyncSession = Depends(get_db),
        transport: CookieTransport = Depends(get_cookie_transport),
    ) -> Principal:
        access_token, refresh_token = transport.read(request)
        gate = AuthGate(db)

        try:
            result = await gate.authenticate(access_token, refresh_token)
        except UnauthenticatedError as e:
            logger.info(f"Unauthenticated {request.method} {request.url.path}: {e.reason}")
            raise AuthRejected(
                status.HTTP_401_UNAUTHORIZED,
                UNAUTHENTICATED_DETAIL,
                clear_cookies=refresh_token is not None,
            ) from e

        if result.rotated is not None:
            transport.write(response, result.rotated)

        try:
            gate.authorize(
                result.principal,
                rights,
                owner(request) if owner is not None else None,
            )
        except ForbiddenError as e:
            raise AuthRejected(
                status.HTTP_403_FORBIDDEN, FORBIDDEN_DETAIL, rotated=result.rotated
            ) from e

        request.state.principal = result.principal
        return result.principal

    return dependency


# Any authenticated principal, no rights required
current_principal = require_auth()
