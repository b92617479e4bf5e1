"""
Conversation and message API endpoints.

Every route is scoped to the authenticated user: a conversation owned by
someone else is reported as not found.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, UploadFile, status
from pydantic import ValidationError

from chatdesk.core.config import settings
from chatdesk.core.security import UserContext, get_current_user
from chatdesk.models import Conversation
from chatdesk.schemas.chat import (
    ConversationCreateRequest,
    ConversationInfo,
    MessageInfo,
    PastedImage,
    RejectedAttachment,
    SendMessageResponse,
    pasted_images_adapter,
)
from chatdesk.services.chat_service import IncomingFile, chat_service
from chatdesk.services.database import database

router = APIRouter()


async def _owned_conversation(conversation_id: int, user_ctx: UserContext) -> Conversation:
    conversation = await database.get_conversation(conversation_id, user_ctx.user_id)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


def _parse_image_data(image_data: str | None) -> list[PastedImage]:
    if not image_data:
        return []
    try:
        return pasted_images_adapter.validate_json(image_data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="imageData must be a JSON array of {filename, base64, mimeType}",
        ) from e


@router.get("", response_model=list[ConversationInfo])
async def list_conversations(user_ctx: UserContext = Depends(get_current_user)) -> list[ConversationInfo]:
    """The user's conversations, least recently active first."""
    conversations = await database.list_conversations(user_ctx.user_id)
    return [ConversationInfo.model_validate(c) for c in conversations]


@router.post("", response_model=ConversationInfo)
async def create_conversation(
    request: ConversationCreateRequest | None = None,
    user_ctx: UserContext = Depends(get_current_user),
) -> ConversationInfo:
    """
    Start a new conversation.

    The title defaults to "New Conversation" and is replaced by the first
    words of the first message.
    """
    request = request or ConversationCreateRequest()
    conversation = await database.create_conversation(user_ctx.user_id, request.title)
    return ConversationInfo.model_validate(conversation)


@router.get("/{conversation_id}", response_model=ConversationInfo)
async def get_conversation(
    conversation_id: int = Path(..., description="The conversation ID"),
    user_ctx: UserContext = Depends(get_current_user),
) -> ConversationInfo:
    conversation = await _owned_conversation(conversation_id, user_ctx)
    return ConversationInfo.model_validate(conversation)


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: int = Path(..., description="The conversation ID"),
    user_ctx: UserContext = Depends(get_current_user),
) -> dict:
    """Delete a conversation together with all of its messages."""
    deleted = await database.delete_conversation(conversation_id, user_ctx.user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return {"success": True}


@router.get("/{conversation_id}/messages", response_model=list[MessageInfo])
async def list_messages(
    conversation_id: int = Path(..., description="The conversation ID"),
    user_ctx: UserContext = Depends(get_current_user),
) -> list[MessageInfo]:
    await _owned_conversation(conversation_id, user_ctx)
    messages = await database.list_messages(conversation_id)
    return [MessageInfo.model_validate(m) for m in messages]


@router.post("/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: int = Path(..., description="The conversation ID"),
    content: str = Form(""),
    image_data: str | None = Form(None, alias="imageData"),
    files: list[UploadFile] | None = File(None),
    user_ctx: UserContext = Depends(get_current_user),
) -> SendMessageResponse:
    """
    Send a message and get the assistant's reply.

    Multipart form fields:
    - `content`: message text
    - `files`: zero or more attachments (JPEG, PNG, GIF, WebP, PDF, DOCX, XLSX, TXT)
    - `imageData`: optional JSON array of pasted images,
      `[{"filename": "...", "base64": "...", "mimeType": "image/png"}]`

    Unsupported or oversized files are skipped and listed in
    `rejected_attachments`. When no AI provider can answer, the assistant
    message explains why and `provider` is null.

    **Errors**:
    - 404 if the conversation doesn't exist or belongs to another user
    - 429 if the user's token quota is exhausted
    """
    conversation = await _owned_conversation(conversation_id, user_ctx)

    if len(content) > settings.MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message content exceeds maximum length of {settings.MAX_MESSAGE_LENGTH} characters",
        )

    pasted_images = _parse_image_data(image_data)

    incoming = []
    for upload in files or []:
        data = await upload.read()
        incoming.append(
            IncomingFile(
                filename=upload.filename or "upload",
                mimetype=upload.content_type or "application/octet-stream",
                data=data,
            )
        )

    result = await chat_service.send_message(
        user_ctx.user_id,
        conversation,
        content,
        files=incoming,
        pasted_images=pasted_images,
    )

    return SendMessageResponse(
        user_message=MessageInfo.model_validate(result.user_message),
        ai_message=MessageInfo.model_validate(result.ai_message),
        provider=result.provider,
        rejected_attachments=[RejectedAttachment(**r) for r in result.rejected],
    )
