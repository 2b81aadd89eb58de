"""Authentication API endpoints."""

import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.api.deps import (
    UNAUTHENTICATED_DETAIL,
    AuthRejected,
    current_principal,
    get_cookie_transport,
)
from tokengate.core import get_db, settings
from tokengate.models.user import Principal
from tokengate.schemas.auth import (
    AuthResponse,
    AuthTokensResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    TokenInfo,
    UserResponse,
)
from tokengate.services.auth import AuthService
from tokengate.services.cookies import CookieTransport
from tokengate.services.errors import (
    AuthError,
    EmailTakenError,
    InvalidCredentialsError,
    PrincipalNotFoundError,
)
from tokengate.services.token import AuthTokenPair

logger = logging.getLogger(__name__)

# Rate limiting for login attempts
_login_attempts: dict[str, list[float]] = defaultdict(list)


def _check_login_rate_limit(client_ip: str) -> None:
    """Check if a client IP has exceeded the login attempt rate limit."""
    now = time.monotonic()
    attempts = _login_attempts[client_ip]
    _login_attempts[client_ip] = [t for t in attempts if now - t < settings.login_window_seconds]
    if len(_login_attempts[client_ip]) >= settings.login_max_attempts:
        logger.warning("Login rate limit exceeded for %s", client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )


def _record_login_attempt(client_ip: str) -> None:
    """Record a failed login attempt for rate limiting."""
    _login_attempts[client_ip].append(time.monotonic())


def _tokens_response(pair: AuthTokenPair) -> AuthTokensResponse:
    return AuthTokensResponse(
        access=TokenInfo(token=pair.access.token, expires=pair.access.expires_at),
        refresh=TokenInfo(token=pair.refresh.token, expires=pair.refresh.expires_at),
    )


def _unauthenticated(e: Exception) -> HTTPException:
    logger.info(f"Token rejected: {type(e).__name__}")
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHENTICATED_DETAIL)


router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    transport: CookieTransport = Depends(get_cookie_transport),
) -> AuthResponse:
    """Create an account and sign it in."""
    try:
        user = await auth_service.users.create(
            email=request.email,
            password=request.password,
            name=request.name,
        )
    except EmailTakenError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    pair = await auth_service.tokens.generate_auth_tokens(user.id)
    transport.write(response, pair)
    return AuthResponse(user=UserResponse.model_validate(user), tokens=_tokens_response(pair))


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    http_request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    transport: CookieTransport = Depends(get_cookie_transport),
) -> AuthResponse:
    """Authenticate with email and password.

    Sets both token cookies and also returns the pair in the body.
    Rate limited per client IP.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    _check_login_rate_limit(client_ip)

    try:
        user = await auth_service.login_with_email_and_password(request.email, request.password)
    except InvalidCredentialsError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        ) from e

    pair = await auth_service.tokens.generate_auth_tokens(user.id)
    transport.write(response, pair)
    logger.info(f"User logged in: {user.id}")
    return AuthResponse(user=UserResponse.model_validate(user), tokens=_tokens_response(pair))


@router.get("/session", response_model=SessionResponse)
async def session(
    http_request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    transport: CookieTransport = Depends(get_cookie_transport),
) -> SessionResponse:
    """Restore a session from the refresh cookie.

    Rotates the refresh token and returns the signed-in user, or
    `{"user": null}` when no refresh cookie is present.
    """
    _, refresh_token = transport.read(http_request)
    if not refresh_token:
        return SessionResponse(user=None)

    try:
        pair = await auth_service.refresh_auth(refresh_token)
        user = await auth_service.login_with_token(pair.refresh.token)
    except AuthError as e:
        logger.info(f"Session restore rejected: {type(e).__name__}")
        raise AuthRejected(
            status.HTTP_401_UNAUTHORIZED, UNAUTHENTICATED_DETAIL, clear_cookies=True
        ) from e

    transport.write(response, pair)
    return SessionResponse(user=UserResponse.model_validate(user))


@router.post("/refresh-tokens", response_model=AuthTokensResponse)
async def refresh_tokens(
    request: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthTokensResponse:
    """Rotate a refresh token passed in the body (token rotation)."""
    try:
        pair = await auth_service.refresh_auth(request.refresh_token)
    except AuthError as e:
        raise _unauthenticated(e) from e
    return _tokens_response(pair)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    http_request: Request,
    response: Response,
    request: LogoutRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
    transport: CookieTransport = Depends(get_cookie_transport),
) -> None:
    """Revoke the refresh token and clear both cookies.

    Succeeds even when the token is unknown or already rotated.
    """
    refresh_token = request.refresh_token if request is not None else None
    if not refresh_token:
        _, refresh_token = transport.read(http_request)
    if refresh_token:
        await auth_service.logout(refresh_token)
    transport.clear(response)


@router.post("/forgot-password", status_code=status.HTTP_204_NO_CONTENT)
async def forgot_password(
    request: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    try:
        await auth_service.send_reset_password_link(request.email)
    except PrincipalNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT)
async def reset_password(
    request: ResetPasswordRequest,
    token: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    try:
        await auth_service.reset_password(token, request.password)
    except AuthError as e:
        logger.info(f"Password reset rejected: {type(e).__name__}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Password reset failed"
        ) from e


@router.post("/send-verification-email", status_code=status.HTTP_204_NO_CONTENT)
async def send_verification_email(
    principal: Principal = Depends(current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    await auth_service.send_verification_link(principal)


@router.post("/verify-email", status_code=status.HTTP_204_NO_CONTENT)
async def verify_email(
    token: str = Query(..., min_length=1),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    try:
        await auth_service.verify_email(token)
    except AuthError as e:
        logger.info(f"Email verification rejected: {type(e).__name__}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Email verification failed"
        ) from e
