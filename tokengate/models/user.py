"""User model backing the principal store."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from tokengate.core.roles import Role
from tokengate.models.base import BaseModel, utcnow


class User(BaseModel):
    """A principal that can sign in and own tokens."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(
        SAEnum(Role, name="user_role", create_constraint=True),
        nullable=False,
        default=Role.USER,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def to_principal(self) -> "Principal":
        return Principal(id=self.id, email=self.email, name=self.name, role=self.role)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


@dataclass(frozen=True)
class Principal:
    """Identity projection handed to protected handlers."""

    id: UUID
    email: str
    name: str | None
    role: Role
