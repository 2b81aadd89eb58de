"""Cookie transport for the access/refresh token pair."""

from fastapi import Request, Response

from tokengate.core.config import Settings, settings as default_settings
from tokengate.services.token import AuthTokenPair, IssuedToken


class CookieTransport:
    """Reads and writes both tokens as HttpOnly cookies.

    Each cookie expires together with the token it carries.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    @property
    def access_name(self) -> str:
        return self.settings.access_cookie_name

    @property
    def refresh_name(self) -> str:
        return self.settings.refresh_cookie_name

    def read(self, request: Request) -> tuple[str | None, str | None]:
        """Return (access, refresh); missing or empty cookies come back as None."""
        access = request.cookies.get(self.access_name) or None
        refresh = request.cookies.get(self.refresh_name) or None
        return access, refresh

    def _set(self, response: Response, name: str, issued: IssuedToken) -> None:
        response.set_cookie(
            key=name,
            value=issued.token,
            expires=issued.expires_at,
            httponly=True,
            secure=self.settings.cookie_secure,
            samesite=self.settings.cookie_samesite,
            path="/",
        )

    def write(self, response: Response, pair: AuthTokenPair) -> None:
        self._set(response, self.access_name, pair.access)
        self._set(response, self.refresh_name, pair.refresh)

    def clear(self, response: Response) -> None:
        for name in (self.access_name, self.refresh_name):
            response.delete_cookie(
                key=name,
                path="/",
                httponly=True,
                secure=self.settings.cookie_secure,
                samesite=self.settings.cookie_samesite,
            )
