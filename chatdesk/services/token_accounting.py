"""
Estimated token usage accounting.

Usage is estimated from raw character counts (~4 characters per token) and
added to the user's running counter with a single atomic UPDATE. Accounting
runs after the assistant reply is persisted and never fails the request.
"""

import logging
import math

from chatdesk.services.database import database

logger = logging.getLogger("chatdesk.tokens")

CHARS_PER_TOKEN = 4


def estimate_tokens(user_chars: int, ai_chars: int) -> int:
    """ceil((user_chars + ai_chars) / 4)"""
    return math.ceil((user_chars + ai_chars) / CHARS_PER_TOKEN)


class TokenAccountant:
    def __init__(self):
        self.db = database

    async def record_usage(self, user_id: str, user_text: str, ai_text: str) -> int | None:
        """
        Add the estimated cost of one exchange to the user's token_used.

        Returns:
            Tokens added, or None if the update failed (the failure is logged only).
        """
        tokens = estimate_tokens(len(user_text or ""), len(ai_text or ""))
        try:
            updated = await self.db.increment_token_usage(user_id, tokens)
        except Exception as e:
            logger.error("Error updating token usage for user %s: %s", user_id, e)
            return None

        if not updated:
            logger.warning("Token usage not recorded: user %s not found", user_id)
            return None
        return tokens


# Global instance
token_accountant = TokenAccountant()
