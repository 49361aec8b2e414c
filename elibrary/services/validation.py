"""Input validation applied before any network call."""
from __future__ import annotations

from elibrary import config as app_config
from elibrary.services.records import PDF_CONTENT_TYPE, PdfFile


class ValidationError(ValueError):
    """Raised when user input is rejected locally (never sent to the backend)."""


def validate_pdf_upload(pdf: PdfFile, *, max_bytes: int = app_config.MAX_UPLOAD_BYTES) -> PdfFile:
    if (pdf.content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        raise ValidationError("invalid_file_type")
    if pdf.size == 0:
        raise ValidationError("file_empty")
    if pdf.size > max_bytes:
        raise ValidationError("file_too_large")
    return pdf


def normalize_note_content(content: object) -> str:
    if not isinstance(content, str):
        raise ValidationError("content_required")
    cleaned = content.strip()
    if not cleaned:
        raise ValidationError("content_required")
    return cleaned


def require_id(value: object, name: str = "id") -> str:
    cleaned = str(value).strip() if value is not None else ""
    if not cleaned:
        raise ValidationError(f"{name}_required")
    return cleaned


__all__ = [
    "ValidationError",
    "validate_pdf_upload",
    "normalize_note_content",
    "require_id",
]
