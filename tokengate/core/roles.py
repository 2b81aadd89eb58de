"""Role to rights table.

The table is built once at import time and exposed read-only; roles never
gain or lose rights while the process is running.
"""

from enum import Enum
from types import MappingProxyType


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class Right(str, Enum):
    GET_USERS = "getUsers"
    MANAGE_USERS = "manageUsers"


ROLE_RIGHTS: MappingProxyType[Role, tuple[Right, ...]] = MappingProxyType(
    {
        Role.USER: (),
        Role.ADMIN: (Right.GET_USERS, Right.MANAGE_USERS),
    }
)

ROLES: tuple[Role, ...] = tuple(ROLE_RIGHTS)


def rights_for(role: Role | str) -> frozenset[Right]:
    """Return the rights granted to a role. Unknown roles grant nothing."""
    try:
        return frozenset(ROLE_RIGHTS[Role(role)])
    except (ValueError, KeyError):
        return frozenset()
