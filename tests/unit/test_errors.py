"""Tests for receipt_capture.errors."""

from __future__ import annotations

import pytest

from receipt_capture.errors import (
    ErrorCategory,
    ExtractionError,
    UploadError,
    ValidationError,
    classify_http_status,
)


class TestClassifyHttpStatus:
    """Tests for classify_http_status()."""

    @pytest.mark.parametrize(
        ("status", "category"),
        [
            (401, ErrorCategory.AUTHENTICATION),
            (403, ErrorCategory.AUTHENTICATION),
            (413, ErrorCategory.FILE_TOO_LARGE),
            (415, ErrorCategory.UNSUPPORTED_TYPE),
            (429, ErrorCategory.RATE_LIMIT),
            (500, ErrorCategory.SERVICE_ERROR),
            (400, ErrorCategory.SERVICE_ERROR),
        ],
    )
    def test_mapping(self, status: int, category: ErrorCategory) -> None:
        assert classify_http_status(status) == category


class TestMessages:
    """Tests for user-facing error messages."""

    def test_transient_categories(self) -> None:
        assert ExtractionError(ErrorCategory.NETWORK).is_transient
        assert ExtractionError(ErrorCategory.RATE_LIMIT).is_transient
        assert not ExtractionError(ErrorCategory.AUTHENTICATION).is_transient

    def test_size_message_names_limit(self) -> None:
        assert "max 10MB" in ExtractionError(ErrorCategory.FILE_TOO_LARGE).user_message

    def test_custom_extraction_message(self) -> None:
        error = ExtractionError(ErrorCategory.SERVICE_ERROR, "Vendor said no")

        assert error.user_message == "Vendor said no"
        assert str(error) == "Vendor said no"

    def test_validation_label(self) -> None:
        error = ValidationError("merchant_name")

        assert error.user_message == "Merchant name is required."
        assert error.category == ErrorCategory.VALIDATION

    def test_upload_attempts(self) -> None:
        assert "after 3 attempts" in UploadError(3).user_message
