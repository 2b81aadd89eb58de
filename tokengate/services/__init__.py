# tokengate Services
from tokengate.services.auth import AuthService
from tokengate.services.cookies import CookieTransport
from tokengate.services.gate import AuthGate, GateResult
from tokengate.services.signer import Signer, TokenPayload, get_signer
from tokengate.services.token import AuthTokenPair, IssuedToken, TokenService
from tokengate.services.token_store import TokenStore
from tokengate.services.user import UserService

__all__ = [
    "AuthGate",
    "AuthService",
    "AuthTokenPair",
    "CookieTransport",
    "GateResult",
    "IssuedToken",
    "Signer",
    "TokenPayload",
    "TokenService",
    "TokenStore",
    "UserService",
    "get_signer",
]
