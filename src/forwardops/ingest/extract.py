"""Upload validation and text extraction.

Accepted uploads: PDF (via pypdf), plain text and JSON, up to a configured
size limit (10 MiB by default). PDFs must carry the ``%PDF`` magic number,
must not be encrypted and must have at least one page.
"""

from __future__ import annotations

import io
import json

import pypdf
import structlog
from pypdf.errors import PyPdfError

from forwardops.config import DEFAULT_MIME_TYPES
from forwardops.db.models import DocumentType
from forwardops.errors import FileTooLarge, InvalidPdf, UnsupportedFileType, ValidationError

logger = structlog.get_logger(logger_name=__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
_PDF_MAGIC = b"%PDF"


def detect_document_type(file_name: str) -> DocumentType:
    """Classify a VA document by keywords in its file name."""
    name = file_name.lower()
    if "c&p" in name or "cp exam" in name:
        return DocumentType.CP_EXAM
    if "rating" in name or "decision" in name:
        return DocumentType.RATING_DECISION
    if "dbq" in name:
        return DocumentType.DBQ
    return DocumentType.OTHER


def validate_upload(
    data: bytes,
    mime_type: str,
    *,
    max_bytes: int = MAX_UPLOAD_BYTES,
    allowed_mime_types: tuple[str, ...] = DEFAULT_MIME_TYPES,
) -> None:
    """Raise a ValidationError subclass if *data* cannot be accepted.

    Raises:
        FileTooLarge: If the payload exceeds *max_bytes*.
        UnsupportedFileType: If *mime_type* is not allowed.
        InvalidPdf: If a PDF is corrupt, encrypted or has no pages.
        ValidationError: If the payload is empty.
    """
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > max_bytes:
        raise FileTooLarge(
            f"File size {len(data)} bytes exceeds the {max_bytes // (1024 * 1024)} MB limit"
        )
    if mime_type not in allowed_mime_types:
        raise UnsupportedFileType(
            f"Unsupported file type '{mime_type}'. Allowed: {', '.join(allowed_mime_types)}"
        )
    if mime_type == "application/pdf":
        _open_pdf(data)


def extract_text(data: bytes, mime_type: str) -> str:
    """Return the text content of an accepted upload.

    Raises:
        InvalidPdf: If the PDF yields no extractable text.
        ValidationError: If text/JSON payloads are not valid UTF-8 or JSON.
    """
    if mime_type == "application/pdf":
        reader = _open_pdf(data)
        parts: list[str] = []
        for page in reader.pages:
            page_text = (page.extract_text() or "").strip()
            if page_text:
                parts.append(page_text)
        text = "\n\n".join(parts)
        if not text.strip():
            raise InvalidPdf("PDF contains no extractable text")
        logger.debug("PDF text extracted", chars=len(text), pages=len(reader.pages))
        return text

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"File is not valid UTF-8: {exc}") from exc

    if mime_type == "application/json":
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid JSON: {exc}") from exc
        text = json.dumps(parsed, indent=2, ensure_ascii=False)

    return text


def _open_pdf(data: bytes) -> pypdf.PdfReader:
    if not data.startswith(_PDF_MAGIC):
        raise InvalidPdf("Invalid PDF file format")
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            raise InvalidPdf("Encrypted PDFs are not supported")
        page_count = len(reader.pages)
    except (PyPdfError, ValueError) as exc:
        raise InvalidPdf(f"Invalid or corrupted PDF file: {exc}") from exc
    if page_count < 1:
        raise InvalidPdf("PDF file contains no pages")
    return reader
