# tokengate Schemas
from tokengate.schemas.auth import (
    AuthResponse,
    AuthTokensResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
    TokenInfo,
    UserResponse,
)

__all__ = [
    "AuthResponse",
    "AuthTokensResponse",
    "ForgotPasswordRequest",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "SessionResponse",
    "TokenInfo",
    "UserResponse",
]
