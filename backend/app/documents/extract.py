"""Document-to-text extraction for uploads (PDF and plain text)."""

import io
import logging

import pdfplumber

logger = logging.getLogger(__name__)

PDF = "application/pdf"
TEXT = "text/plain"


class UnsupportedDocumentType(Exception):
    """Upload is neither PDF nor plain text."""

    pass


class DocumentTooLarge(Exception):
    """Upload exceeds the configured size limit."""

    pass


class EmptyDocument(Exception):
    """No text could be extracted from the upload."""

    pass


def _guess_type(filename: str, content_type: str | None) -> str | None:
    if content_type:
        base = content_type.split(";", 1)[0].strip().lower()
        if base in (PDF, TEXT):
            return base
    lowered = filename.lower()
    if lowered.endswith(".pdf"):
        return PDF
    if lowered.endswith(".txt"):
        return TEXT
    return None


def extract_text(
    filename: str,
    content_type: str | None,
    data: bytes,
    *,
    max_bytes: int,
    allowed_types: tuple[str, ...] = (PDF, TEXT),
) -> str:
    """Extract plain text from an uploaded document.

    Args:
        filename: Original upload name
        content_type: Declared MIME type (may be missing or generic)
        data: Raw upload bytes
        max_bytes: Upload size limit
        allowed_types: Accepted MIME types

    Returns:
        Extracted text

    Raises:
        DocumentTooLarge: Upload exceeds max_bytes
        UnsupportedDocumentType: Not a PDF or text file
        EmptyDocument: Nothing extractable
    """
    if len(data) > max_bytes:
        raise DocumentTooLarge(f"File exceeds the {max_bytes // (1024 * 1024)}MB upload limit")

    kind = _guess_type(filename, content_type)
    if kind is None or kind not in allowed_types:
        raise UnsupportedDocumentType("Invalid file type. Only PDF and TXT files are allowed.")

    if kind == PDF:
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            raise EmptyDocument(f"Could not read PDF: {type(e).__name__}") from e
        text = "\n\n".join(pages)
    else:
        text = data.decode("utf-8", errors="replace")

    if not text.strip():
        raise EmptyDocument("No text could be extracted from the file")

    logger.info(f"Extracted {len(text)} characters from {filename}")
    return text
