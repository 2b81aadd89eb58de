"""Principal store: users, roles and password hashes."""

import logging
from collections.abc import Sequence
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.core.roles import Role
from tokengate.models.token import Token
from tokengate.models.user import User
from tokengate.services.errors import EmailTakenError, PrincipalNotFoundError

logger = logging.getLogger(__name__)

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except (VerificationError, InvalidHashError):
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Lookups and mutations on the users table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: UUID) -> User:
        """Like find_by_id, but raises PrincipalNotFoundError."""
        user = await self.find_by_id(user_id)
        if user is None:
            raise PrincipalNotFoundError("User not found")
        return user

    async def list_users(self, limit: int = 100, offset: int = 0) -> Sequence[User]:
        result = await self.session.execute(
            select(User).order_by(User.created_at, User.email).limit(limit).offset(offset)
        )
        return result.scalars().all()

    async def create(
        self,
        email: str,
        password: str,
        name: str | None = None,
        role: Role = Role.USER,
    ) -> User:
        """Create a user. Raises EmailTakenError if the email is registered."""
        email = normalize_email(email)
        if await self.find_by_email(email) is not None:
            raise EmailTakenError("Email already taken")

        user = User(
            email=email,
            name=name,
            role=role,
            password_hash=hash_password(password),
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            await self.session.rollback()
            raise EmailTakenError("Email already taken") from e
        await self.session.refresh(user)

        logger.info(f"Created user: {user.id}")
        return user

    async def update_password(self, user: User, new_password: str) -> None:
        """Replace a password hash and drop every token of the user."""
        user.password_hash = hash_password(new_password)
        await self.session.execute(
            delete(Token)
            .where(Token.subject_id == user.id)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        logger.info(f"Password changed for user: {user.id}")

    async def mark_email_verified(self, user: User) -> None:
        user.is_email_verified = True
        await self.session.commit()

    async def delete(self, user: User) -> None:
        # Connections without the foreign_keys pragma skip ON DELETE CASCADE
        await self.session.execute(
            delete(Token)
            .where(Token.subject_id == user.id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(user)
        await self.session.commit()
        logger.info(f"Deleted user: {user.id}")
