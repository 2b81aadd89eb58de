"""Authentication and authorization errors.

Low-level token and store errors carry the precise cause for diagnostics.
The request boundary only ever exposes UnauthenticatedError or
ForbiddenError to the credential presenter.
"""


class AuthError(Exception):
    """Base authentication error."""

    pass


class TokenError(AuthError):
    """Signed token error."""

    pass


class InvalidSignatureError(TokenError):
    """Token is tampered, malformed, or not valid for the requested use."""

    pass


class TokenExpiredError(TokenError):
    """Token expiry has passed."""

    pass


class TokenBlacklistedError(TokenError):
    """Token row exists but was blacklisted by an earlier compromise response."""

    pass


class ReusedRefreshTokenError(TokenError):
    """A validly signed refresh token was presented after it had been consumed."""

    pass


class TokenNotFoundError(TokenError):
    """A validly signed single-use token has no matching row."""

    pass


class PrincipalNotFoundError(AuthError):
    """No principal matches the given id or email."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid email or password."""

    pass


class EmailTakenError(AuthError):
    """Email address is already registered."""

    pass


class StoreUnavailableError(AuthError):
    """Token store could not be reached."""

    pass


class UnauthenticatedError(AuthError):
    """Request carries no usable credential.

    `reason` names the underlying cause for logs; it is never sent to
    the client.
    """

    def __init__(self, reason: str = "unauthenticated"):
        super().__init__("Please authenticate")
        self.reason = reason


class ForbiddenError(AuthError):
    """Authenticated principal lacks the required rights."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)
