"""
SQLAlchemy models for conversations and their messages.

A conversation belongs to exactly one user and is removed with that user;
messages belong to exactly one conversation and are removed with it.
Message content is always stored as plain text - multimodal payloads are
rebuilt per request and never persisted.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models with async support."""

    pass


DEFAULT_CONVERSATION_TITLE = "New Conversation"


class Conversation(Base):
    """
    A titled chat thread owned by one user.

    Attributes:
        id: Auto-incrementing primary key
        user_id: Owner's user ID (cascade-deleted with the user)
        title: Display title, seeded from the first message when still a placeholder
        created_at: Timestamp when conversation was created
        updated_at: Timestamp of the latest message
    """

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        default=DEFAULT_CONVERSATION_TITLE,
        nullable=False,
    )
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

    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.id",
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, user={self.user_id}, title={self.title!r})>"


class Message(Base):
    """
    One persisted turn of a conversation.

    Attributes:
        id: Auto-incrementing primary key (also defines history order)
        conversation_id: Parent conversation (cascade-deleted with it)
        role: "user" or "assistant"
        content: Plain text content
        attachments: Files saved for this turn as {filename, mimetype, size, path} records
        provider: Provider that produced an assistant turn (None when all providers were unavailable)
        created_at: Insert timestamp
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachments: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "attachments": self.attachments,
            "provider": self.provider,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation={self.conversation_id}, role={self.role})>"
