"""SQLAlchemy model for the administrator-managed provider configuration."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatdesk.models.conversation import Base

HIDDEN_API_KEY = "***hidden***"


class AdminConfig(Base):
    """
    Provider/model selection and default quota chosen by an administrator.

    At most one row is active; saving a new configuration deactivates the
    previous ones (see Database.save_admin_config).
    """

    __tablename__ = "admin_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_provider: Mapped[str] = mapped_column(String(50), default="openai", nullable=False)
    api_key: Mapped[str] = mapped_column(Text, nullable=False)
    api_endpoint: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_name: Mapped[str] = mapped_column(String(100), default="gpt-4o", nullable=False)
    default_token_quota: Mapped[int] = mapped_column(Integer, default=10000, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
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

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize without exposing the stored API key."""
        return {
            "id": self.id,
            "api_provider": self.api_provider,
            "api_key": HIDDEN_API_KEY if self.api_key else "",
            "api_endpoint": self.api_endpoint or "",
            "model_name": self.model_name,
            "default_token_quota": self.default_token_quota,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<AdminConfig(id={self.id}, provider={self.api_provider}, model={self.model_name})>"
