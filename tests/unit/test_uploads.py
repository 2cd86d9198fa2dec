"""Tests for receipt_capture.uploads."""

from __future__ import annotations

import pytest

from receipt_capture.errors import ErrorCategory, ExtractionError
from receipt_capture.uploads import sniff_content_type, validate_upload

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8
HEIC = b"\x00\x00\x00\x18ftypheic" + b"\x00" * 8


class TestSniffContentType:
    """Tests for sniff_content_type()."""

    def test_known_types(self, pdf_bytes: bytes, jpeg_bytes: bytes) -> None:
        assert sniff_content_type(pdf_bytes) == "application/pdf"
        assert sniff_content_type(jpeg_bytes) == "image/jpeg"
        assert sniff_content_type(PNG) == "image/png"
        assert sniff_content_type(HEIC) == "image/heic"

    def test_unknown(self) -> None:
        assert sniff_content_type(b"GIF89a") is None
        assert sniff_content_type(b"") is None


class TestValidateUpload:
    """Tests for validate_upload()."""

    def test_accepts_pdf(self, pdf_bytes: bytes) -> None:
        assert validate_upload(pdf_bytes, "receipt.pdf") == "application/pdf"

    def test_accepts_uppercase_extension(self, jpeg_bytes: bytes) -> None:
        assert validate_upload(jpeg_bytes, "IMG_0001.JPEG") == "image/jpeg"

    def test_accepts_heic(self) -> None:
        assert validate_upload(HEIC, "photo.heic") == "image/heic"

    def test_too_large(self, pdf_bytes: bytes) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            validate_upload(pdf_bytes, "receipt.pdf", max_bytes=4)

        assert exc_info.value.category == ErrorCategory.FILE_TOO_LARGE
        assert "10MB" in exc_info.value.user_message

    def test_size_at_limit_allowed(self, pdf_bytes: bytes) -> None:
        assert validate_upload(pdf_bytes, "receipt.pdf", max_bytes=len(pdf_bytes))

    @pytest.mark.parametrize(
        ("data", "filename"),
        [
            (b"GIF89a....", "receipt.gif"),
            (b"%PDF-1.4", "receipt.txt"),
            (b"%PDF-1.4", "receipt.png"),
            (b"plain text", "receipt.pdf"),
        ],
    )
    def test_unsupported(self, data: bytes, filename: str) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            validate_upload(data, filename)

        assert exc_info.value.category == ErrorCategory.UNSUPPORTED_TYPE
        assert not exc_info.value.is_transient
