"""Database models for user accounts, conversations and admin configuration."""

from chatdesk.models.admin_config import AdminConfig
from chatdesk.models.conversation import Base, Conversation, Message
from chatdesk.models.user import User

__all__ = ["AdminConfig", "Base", "Conversation", "Message", "User"]
