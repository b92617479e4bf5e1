"""
Plain-text extraction for document attachments.

Dispatches on the declared media type:
- PDF: text of every page, concatenated (pypdf)
- Word (.docx): raw paragraph text without formatting (python-docx)
- Spreadsheet (.xlsx): one "Sheet: <name>" header per sheet followed by its
  rows as comma-separated values, in workbook order (openpyxl)
- Plain text: UTF-8 decoded verbatim

Unknown types degrade to a bracketed placeholder and parse failures to an
inline error marker, so one bad attachment never aborts a send.
"""

import csv
import io
import logging

import docx
import openpyxl
from pypdf import PdfReader

from chatdesk.services.attachments import (
    DOCX_MIME_TYPE,
    PDF_MIME_TYPE,
    TEXT_MIME_TYPE,
    XLSX_MIME_TYPE,
    normalize_mimetype,
)

logger = logging.getLogger("chatdesk.extractor")


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def _extract_xlsx(data: bytes) -> str:
    workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        parts = []
        for sheet in workbook.worksheets:
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            for row in sheet.iter_rows(values_only=True):
                writer.writerow(["" if value is None else value for value in row])
            parts.append(f"Sheet: {sheet.title}\n{buffer.getvalue()}\n\n")
        return "".join(parts)
    finally:
        workbook.close()


def _extract_text(data: bytes) -> str:
    return data.decode("utf-8")


_EXTRACTORS = {
    PDF_MIME_TYPE: _extract_pdf,
    DOCX_MIME_TYPE: _extract_docx,
    XLSX_MIME_TYPE: _extract_xlsx,
    TEXT_MIME_TYPE: _extract_text,
}


def extract_text(data: bytes, mimetype: str) -> str:
    """
    Convert a document's raw bytes into plain text.

    Args:
        data: Raw file bytes.
        mimetype: Declared media type.

    Returns:
        Extracted text, "[File: <type>]" for unsupported types, or
        "[Error processing file: <error>]" if parsing failed.
    """
    extractor = _EXTRACTORS.get(normalize_mimetype(mimetype))
    if extractor is None:
        return f"[File: {mimetype}]"

    try:
        return extractor(data)
    except Exception as e:
        logger.error("Error processing %s document: %s", mimetype, e)
        return f"[Error processing file: {e}]"


def format_document_section(filename: str, text: str) -> str:
    """Block appended to the current user turn for one extracted document."""
    return f"\n\n--- Content from {filename} ---\n{text}\n"
