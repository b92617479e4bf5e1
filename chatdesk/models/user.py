"""
SQLAlchemy model for user accounts.

Besides credentials and status flags, a user carries a token quota
(ceiling) and a running token_used counter. token_used only grows, except
when an administrator explicitly resets it.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatdesk.models.conversation import Base


class User(Base):
    """
    User account model for authentication, authorization and quota tracking.

    Attributes:
        id: UUID primary key
        email: Unique, lower-cased email address
        password_hash: bcrypt hash (None for accounts without a password)
        first_name / last_name / profile_image_url: Profile fields
        is_active: Whether the account can log in and chat
        is_admin: Whether the user can reach the admin API
        email_verified: Whether the email address has been confirmed
        token_quota: Ceiling on cumulative estimated token usage
        token_used: Running total of estimated token usage
        verification_token: Pending email verification token
        reset_token / reset_token_expiry: Pending password reset
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    profile_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Quota
    token_quota: Mapped[int] = mapped_column(Integer, default=10000, nullable=False)
    token_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # One-time tokens
    verification_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reset_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reset_token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def is_over_quota(self) -> bool:
        return self.token_used >= self.token_quota

    def to_dict(self) -> dict[str, Any]:
        """Convert user to dictionary (excludes password hash and one-time tokens)."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "profile_image_url": self.profile_image_url,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
            "email_verified": self.email_verified,
            "token_quota": self.token_quota,
            "token_used": self.token_used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, active={self.is_active})>"
