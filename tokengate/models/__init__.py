# tokengate Models
from tokengate.models.base import BaseModel
from tokengate.models.token import PERSISTED_TOKEN_TYPES, Token, TokenType
from tokengate.models.user import Principal, User

__all__ = [
    "BaseModel",
    "PERSISTED_TOKEN_TYPES",
    "Principal",
    "Token",
    "TokenType",
    "User",
]
