"""Derives a conversation title from its opening message."""

import logging

from chatdesk.models.conversation import Conversation
from chatdesk.services.database import database

logger = logging.getLogger("chatdesk.titles")

PLACEHOLDER_TITLES = frozenset({"New Conversation", "New Chat"})
TITLE_WORDS = 6
MAX_TITLE_LENGTH = 50


def derive_title(text: str) -> str:
    """First six words of the text, cut to 47 characters plus "..." when longer than 50."""
    title = " ".join(text.split()[:TITLE_WORDS])
    if len(title) > MAX_TITLE_LENGTH:
        return title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


async def seed_title(conversation: Conversation, text: str) -> str | None:
    """
    Replace a placeholder title with one derived from the user's message.

    Returns:
        The new title, or None when the conversation already had a real
        title, the message has no words, or the update failed.
    """
    if conversation.title not in PLACEHOLDER_TITLES:
        return None

    title = derive_title(text or "")
    if not title:
        return None

    try:
        await database.update_conversation_title(conversation.id, title)
    except Exception as e:
        logger.error("Error updating title of conversation %s: %s", conversation.id, e)
        return None

    conversation.title = title
    return title
