"""Stateless signing and verification of token payloads."""

import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError

from tokengate.core import settings
from tokengate.models.token import TokenType
from tokengate.services.errors import InvalidSignatureError, TokenExpiredError

REQUIRED_CLAIMS = ["sub", "iat", "exp", "type", "jti"]


@dataclass(frozen=True)
class TokenPayload:
    """Claims carried inside a signed token string."""

    subject: UUID
    issued_at: datetime
    expires_at: datetime
    type: TokenType
    # Random id so two tokens issued in the same second never collide
    jti: str = field(default_factory=lambda: secrets.token_hex(16))

    def to_claims(self) -> dict[str, Any]:
        return {
            "sub": str(self.subject),
            "iat": int(self.issued_at.timestamp()),
            "exp": int(self.expires_at.timestamp()),
            "type": self.type.value,
            "jti": self.jti,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenPayload":
        try:
            return cls(
                subject=UUID(claims["sub"]),
                issued_at=datetime.fromtimestamp(claims["iat"], tz=UTC),
                expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC),
                type=TokenType(claims["type"]),
                jti=str(claims["jti"]),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise InvalidSignatureError(f"Malformed token claims: {e}") from e


class Signer:
    """HMAC signer for token payloads.

    PyJWT compares signatures with hmac.compare_digest, so verification
    time does not depend on how much of a forged signature matches.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("Signer secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm

    def sign(self, payload: TokenPayload) -> str:
        """Sign a payload and return the compact token string."""
        token = jwt.encode(payload.to_claims(), self._secret, algorithm=self.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token)

    def verify(self, token: str, expected_type: TokenType | None = None) -> TokenPayload:
        """Verify signature and expiry, optionally requiring a token type.

        Raises TokenExpiredError for an expired token and
        InvalidSignatureError for everything else.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except PyJWTError as e:
            raise InvalidSignatureError(f"Invalid token: {e}") from e

        payload = TokenPayload.from_claims(claims)
        if expected_type is not None and payload.type != expected_type:
            raise InvalidSignatureError(f"Not a {expected_type.value} token")
        return payload


def get_signer() -> Signer:
    """Build a signer from application settings."""
    return Signer(settings.jwt_secret_key, settings.jwt_algorithm)
