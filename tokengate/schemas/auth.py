"""Pydantic schemas for authentication API."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tokengate.core.roles import Role

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _check_password_strength(v: str) -> str:
    if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
        raise ValueError("Password must contain at least one letter and one number")
    return v


class RegisterRequest(BaseModel):
    """Request for account registration."""

    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
        description="Password (minimum 8 characters, at least one letter and one number)",
    )
    name: str | None = Field(None, max_length=255)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_strength(v)


class LoginRequest(BaseModel):
    """Request for login."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Request for token refresh."""

    refresh_token: str = Field(..., alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


class LogoutRequest(BaseModel):
    """Request for logout. Falls back to the refresh cookie when omitted."""

    refresh_token: str | None = Field(None, alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    password: str = Field(
        ...,
        min_length=8,
        max_length=128,
    )

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_strength(v)


class TokenInfo(BaseModel):
    token: str
    expires: datetime


class AuthTokensResponse(BaseModel):
    """Access and refresh tokens with their expiry instants."""

    access: TokenInfo
    refresh: TokenInfo


class UserResponse(BaseModel):
    """Response with user information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None
    role: Role
    is_email_verified: bool = False


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: AuthTokensResponse


class SessionResponse(BaseModel):
    user: UserResponse | None


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
