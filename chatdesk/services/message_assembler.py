"""
Builds the provider-agnostic conversation payload for one send.

Only the current user turn carries live attachments (extracted document
text and base64 images). Earlier turns are replayed as plain text with an
"[Attached file: ...]" marker per stored attachment, so historical images
are never re-sent. Nothing built here is persisted.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_IMAGE_PROMPT = "Please analyze these images:"
DEFAULT_DOCUMENT_PROMPT = "Please analyze this document:"


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ImageSegment:
    mime_type: str
    base64: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


Segment = TextSegment | ImageSegment


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str | list[Segment]

    @property
    def has_images(self) -> bool:
        return isinstance(self.content, list) and any(isinstance(s, ImageSegment) for s in self.content)


@dataclass(frozen=True)
class LiveImage:
    """An image received in the current request."""

    filename: str
    mime_type: str
    base64: str


class StoredMessage(Protocol):
    id: int
    role: str
    content: str
    attachments: list[dict[str, Any]] | None


def attachment_markers(attachments: Iterable[dict[str, Any]]) -> str:
    return " ".join(
        f"[Attached file: {att.get('filename')} ({att.get('mimetype')})]" for att in attachments
    )


def assemble_turns(
    history: Sequence[StoredMessage],
    current_message_id: int | None,
    document_text: str = "",
    images: Sequence[LiveImage] = (),
) -> list[ChatTurn]:
    """
    Convert stored history (oldest first) into chat turns.

    Args:
        history: Persisted messages of the conversation, oldest first.
        current_message_id: ID of the user message created by this request.
        document_text: Extracted document text gathered in this request.
        images: Images gathered in this request, in upload order.

    Returns:
        Ordered list of ChatTurn.
    """
    turns: list[ChatTurn] = []

    for message in history:
        if message.role == "assistant":
            turns.append(ChatTurn("assistant", message.content))
            continue
        if message.role != "user":
            continue

        is_current = current_message_id is not None and message.id == current_message_id

        if is_current and images:
            text = (message.content or DEFAULT_IMAGE_PROMPT) + document_text
            segments: list[Segment] = [TextSegment(text)]
            segments.extend(ImageSegment(image.mime_type, image.base64) for image in images)
            turns.append(ChatTurn("user", segments))
        elif is_current and document_text:
            turns.append(ChatTurn("user", (message.content or DEFAULT_DOCUMENT_PROMPT) + document_text))
        elif message.attachments:
            turns.append(ChatTurn("user", f"{message.content} {attachment_markers(message.attachments)}"))
        else:
            turns.append(ChatTurn("user", message.content))

    return turns


def contains_images(turns: Iterable[ChatTurn]) -> bool:
    return any(turn.has_images for turn in turns)


def to_openai_messages(turns: Iterable[ChatTurn], system_prompt: str | None = None) -> list[dict[str, Any]]:
    """Render chat turns in the OpenAI chat-completions message format."""
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for turn in turns:
        if isinstance(turn.content, str):
            messages.append({"role": turn.role, "content": turn.content})
            continue

        parts: list[dict[str, Any]] = []
        for segment in turn.content:
            if isinstance(segment, TextSegment):
                parts.append({"type": "text", "text": segment.text})
            else:
                parts.append({"type": "image_url", "image_url": {"url": segment.data_url}})
        messages.append({"role": turn.role, "content": parts})

    return messages
