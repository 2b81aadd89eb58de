"""Persisted tokens: refresh, reset-password and verify-email.

Access tokens are never stored. A row is created at issuance, read during
verification, and afterwards either deleted or flagged as blacklisted; no
other column is ever updated.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from tokengate.models.base import BaseModel


class TokenType(str, Enum):
    ACCESS = "ACCESS"
    REFRESH = "REFRESH"
    RESET_PASSWORD = "RESET_PASSWORD"
    VERIFY_EMAIL = "VERIFY_EMAIL"


PERSISTED_TOKEN_TYPES = frozenset(
    {TokenType.REFRESH, TokenType.RESET_PASSWORD, TokenType.VERIFY_EMAIL}
)


class Token(BaseModel):
    """A signed token string bound to a subject."""

    __tablename__ = "tokens"
    __table_args__ = (Index("ix_tokens_subject_type", "subject_id", "type"),)

    value: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True, index=True)
    subject_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[TokenType] = mapped_column(
        SAEnum(TokenType, name="token_type", create_constraint=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    blacklisted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Token {self.type.value} subject={self.subject_id} blacklisted={self.blacklisted}>"
