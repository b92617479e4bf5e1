"""
Attachment classification for uploaded files and pasted images.

Decides whether a file is sent to the model as an image, has its text
extracted as a document, or is rejected (unsupported type or too large).
"""

from dataclasses import dataclass
from enum import StrEnum

from chatdesk.core.config import settings

IMAGE_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
    }
)

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEXT_MIME_TYPE = "text/plain"

DOCUMENT_MIME_TYPES = frozenset({PDF_MIME_TYPE, DOCX_MIME_TYPE, XLSX_MIME_TYPE, TEXT_MIME_TYPE})


class AttachmentKind(StrEnum):
    IMAGE = "image"
    DOCUMENT = "document"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Classification:
    kind: AttachmentKind
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.kind is not AttachmentKind.REJECTED


def normalize_mimetype(mimetype: str | None) -> str:
    """Lower-cased media type without parameters ("text/plain; charset=utf-8" -> "text/plain")."""
    return (mimetype or "").split(";", 1)[0].strip().lower()


def classify(mimetype: str | None, size: int, max_bytes: int | None = None) -> Classification:
    """
    Classify one attachment by declared media type and byte size.

    Args:
        mimetype: Declared media type (parameters such as "; charset=" are ignored).
        size: Size in bytes.
        max_bytes: Size ceiling, defaults to MAX_UPLOAD_BYTES.

    Returns:
        Classification with kind IMAGE, DOCUMENT or REJECTED (with a reason).
    """
    limit = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    media_type = normalize_mimetype(mimetype)

    if media_type not in IMAGE_MIME_TYPES and media_type not in DOCUMENT_MIME_TYPES:
        return Classification(AttachmentKind.REJECTED, f"Unsupported file type: {media_type or 'unknown'}")
    if size > limit:
        return Classification(AttachmentKind.REJECTED, f"File exceeds the {limit} byte limit")
    if media_type in IMAGE_MIME_TYPES:
        return Classification(AttachmentKind.IMAGE)
    return Classification(AttachmentKind.DOCUMENT)
