"""
Pydantic schemas for conversation and message API requests and responses.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from chatdesk.models.conversation import DEFAULT_CONVERSATION_TITLE


class ConversationCreateRequest(BaseModel):
    """Request to start a new conversation."""

    title: str = Field(DEFAULT_CONVERSATION_TITLE, min_length=1, max_length=255)


class ConversationInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AttachmentInfo(BaseModel):
    """Stored description of a file attached to a user turn."""

    filename: str
    mimetype: str
    size: int
    path: str | None = None


class MessageInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    role: str
    content: str
    attachments: list[AttachmentInfo] | None = None
    provider: str | None = None
    created_at: datetime | None = None


class RejectedAttachment(BaseModel):
    """An attachment that was dropped before processing, and why."""

    filename: str
    mimetype: str
    size: int
    reason: str


class SendMessageResponse(BaseModel):
    """
    Result of one send.

    The assistant message is always present: when no provider could answer,
    its content explains the unavailability and provider is None.
    """

    user_message: MessageInfo
    ai_message: MessageInfo
    provider: str | None = None
    rejected_attachments: list[RejectedAttachment] = []


class PastedImage(BaseModel):
    """Clipboard image sent in the imageData form field."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str = "pasted-image.png"
    base64: str | None = None
    mime_type: str | None = Field(None, alias="mimeType")


pasted_images_adapter = TypeAdapter(list[PastedImage])
