"""
Message-send orchestration.

One send runs, in order:
1. Quota pre-flight check
2. Attachment classification, upload persistence, image encoding and
   sequential document extraction
3. Persist the user message
4. Assemble the conversation and run the provider fallback chain
5. Persist the assistant message (always - unavailability is its content)
6. Token accounting and title seeding (failures logged, never raised)
7. Remove this request's uploaded files
"""

import asyncio
import base64
import binascii
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import HTTPException, status

from chatdesk.core.config import settings
from chatdesk.models import Conversation, Message
from chatdesk.schemas.chat import PastedImage
from chatdesk.services.attachments import AttachmentKind, classify, normalize_mimetype
from chatdesk.services.database import database
from chatdesk.services.document_extractor import extract_text, format_document_section
from chatdesk.services.message_assembler import LiveImage, assemble_turns
from chatdesk.services.providers import provider_registry
from chatdesk.services.title_seeder import seed_title
from chatdesk.services.token_accounting import token_accountant

logger = logging.getLogger("chatdesk.chat")

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")


@dataclass
class IncomingFile:
    """An uploaded file part, already read into memory."""

    filename: str
    mimetype: str
    data: bytes


@dataclass
class PreparedAttachments:
    attachments: list[dict[str, Any]] = field(default_factory=list)
    images: list[LiveImage] = field(default_factory=list)
    document_text: str = ""
    rejected: list[dict[str, Any]] = field(default_factory=list)
    saved_paths: list[Path] = field(default_factory=list)


@dataclass
class SendResult:
    user_message: Message
    ai_message: Message
    provider: str | None
    rejected: list[dict[str, Any]]


class ChatService:
    """Runs the send-message flow for one conversation turn."""

    def __init__(self):
        self.db = database
        self.providers = provider_registry
        self.accountant = token_accountant

    async def send_message(
        self,
        user_id: str,
        conversation: Conversation,
        content: str,
        files: list[IncomingFile] | None = None,
        pasted_images: list[PastedImage] | None = None,
    ) -> SendResult:
        """
        Persist a user turn, obtain the assistant reply and persist it.

        Args:
            user_id: Sender (owner of the conversation).
            conversation: Target conversation, already ownership-checked.
            content: Message text (may be empty when attachments carry the request).
            files: Uploaded file parts in upload order.
            pasted_images: Clipboard images from the imageData field.

        Returns:
            SendResult with both persisted messages, the answering provider and
            the list of rejected attachments.

        Raises:
            HTTPException: 404 if the user no longer exists, 429 if over quota.
        """
        await self._check_quota(user_id)

        prepared = PreparedAttachments()
        try:
            await self._prepare_files(files or [], prepared)
            self._prepare_pasted_images(pasted_images or [], prepared)

            user_message = await self.db.add_message(
                conversation.id,
                "user",
                content,
                attachments=prepared.attachments or None,
            )

            history = await self.db.list_messages(conversation.id)
            turns = assemble_turns(history, user_message.id, prepared.document_text, prepared.images)
            chain = self.providers.build_chain(await self.db.get_active_admin_config())
            result = await chain.run(turns)

            ai_message = await self.db.add_message(
                conversation.id,
                "assistant",
                result.content,
                provider=result.provider,
            )

            await self.accountant.record_usage(user_id, content, result.content)
            await seed_title(conversation, content)
        finally:
            await self._cleanup(prepared.saved_paths)

        return SendResult(
            user_message=user_message,
            ai_message=ai_message,
            provider=result.provider,
            rejected=prepared.rejected,
        )

    async def _check_quota(self, user_id: str) -> None:
        user = await self.db.get_user(user_id)
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        if settings.ENFORCE_TOKEN_QUOTA and user.is_over_quota:
            logger.info("Send blocked for user %s: %d/%d tokens used", user_id, user.token_used, user.token_quota)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Token quota exceeded. Please contact an administrator.",
            )

    async def _prepare_files(self, files: list[IncomingFile], prepared: PreparedAttachments) -> None:
        upload_dir = Path(settings.UPLOAD_DIR)

        for incoming in files:
            mimetype = normalize_mimetype(incoming.mimetype)
            size = len(incoming.data)
            classification = classify(mimetype, size)
            if not classification.accepted:
                logger.info("Rejected attachment %s: %s", incoming.filename, classification.reason)
                prepared.rejected.append(
                    {"filename": incoming.filename, "mimetype": mimetype, "size": size, "reason": classification.reason}
                )
                continue

            path = upload_dir / f"{uuid.uuid4().hex}{Path(incoming.filename).suffix}"
            await asyncio.to_thread(_write_upload, path, incoming.data)
            prepared.saved_paths.append(path)
            prepared.attachments.append(
                {"filename": incoming.filename, "mimetype": mimetype, "size": size, "path": str(path)}
            )

            if classification.kind is AttachmentKind.IMAGE:
                prepared.images.append(
                    LiveImage(incoming.filename, mimetype, base64.b64encode(incoming.data).decode("ascii"))
                )
            else:
                text = await asyncio.to_thread(extract_text, incoming.data, mimetype)
                if text and text.strip():
                    prepared.document_text += format_document_section(incoming.filename, text)

    def _prepare_pasted_images(self, pasted: list[PastedImage], prepared: PreparedAttachments) -> None:
        for image in pasted:
            if not image.base64 or not image.mime_type:
                continue

            mimetype = normalize_mimetype(image.mime_type)
            payload = DATA_URL_PREFIX.sub("", image.base64)
            try:
                size = len(base64.b64decode(payload, validate=True))
            except (binascii.Error, ValueError):
                prepared.rejected.append(
                    {"filename": image.filename, "mimetype": mimetype, "size": 0, "reason": "Invalid base64 image data"}
                )
                continue

            classification = classify(mimetype, size)
            if classification.kind is not AttachmentKind.IMAGE:
                reason = classification.reason or "Pasted data must be an image"
                prepared.rejected.append({"filename": image.filename, "mimetype": mimetype, "size": size, "reason": reason})
                continue

            prepared.images.append(LiveImage(image.filename, mimetype, payload))
            prepared.attachments.append({"filename": image.filename, "mimetype": mimetype, "size": size, "path": None})

    async def _cleanup(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                await asyncio.to_thread(path.unlink, True)
            except OSError as e:
                logger.error("Error cleaning up uploaded file %s: %s", path, e)


def _write_upload(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


# Global instance
chat_service = ChatService()
