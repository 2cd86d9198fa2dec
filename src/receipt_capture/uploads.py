"""Caller-side checks on receipt files before they reach the OCR service."""

from __future__ import annotations

from pathlib import PurePath

from receipt_capture.config import DEFAULT_MAX_UPLOAD_BYTES
from receipt_capture.errors import ErrorCategory, ExtractionError

ALLOWED_EXTENSIONS = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".heic": "image/heic",
    ".heif": "image/heic",
}

_HEIC_BRANDS = (b"heic", b"heix", b"hevc", b"hevx", b"mif1", b"msf1")


def sniff_content_type(data: bytes) -> str | None:
    """Identify PDF, JPEG, PNG and HEIC files by their magic bytes."""
    if data.startswith(b"%PDF-"):
        return "application/pdf"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[4:8] == b"ftyp" and data[8:12] in _HEIC_BRANDS:
        return "image/heic"
    return None


def validate_upload(
    data: bytes, filename: str, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> str:
    """Check size and type of a receipt file and return its content type.

    Raises:
        ExtractionError: FILE_TOO_LARGE or UNSUPPORTED_TYPE.
    """
    if len(data) > max_bytes:
        raise ExtractionError(ErrorCategory.FILE_TOO_LARGE)

    content_type = sniff_content_type(data)
    expected = ALLOWED_EXTENSIONS.get(PurePath(filename).suffix.lower())
    if content_type is None or expected is None or expected != content_type:
        raise ExtractionError(ErrorCategory.UNSUPPORTED_TYPE)
    return content_type
