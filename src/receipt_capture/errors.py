"""Error taxonomy for the receipt capture pipeline.

Every stage-level failure is converted to one of these exceptions at the
stage boundary. Each carries an :class:`ErrorCategory` and a mapped
user-facing message; raw vendor or store text stays in ``__cause__``.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    """Coarse error categories the UI uses to pick remediation advice."""

    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_TYPE = "unsupported_type"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    SERVICE_ERROR = "service_error"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    GLOBAL_DUPLICATE = "global_duplicate"
    UPLOAD = "upload"
    STORE = "store"

    @property
    def is_transient(self) -> bool:
        """True when "try again" is reasonable advice."""
        return self in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT)


_OCR_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.FILE_TOO_LARGE: (
        "File is too large. Please try a smaller file (max 10MB)."
    ),
    ErrorCategory.UNSUPPORTED_TYPE: (
        "Please upload a valid image (JPEG, PNG, HEIC) or PDF file."
    ),
    ErrorCategory.NETWORK: (
        "Network error. Please check your connection and try again."
    ),
    ErrorCategory.RATE_LIMIT: (
        "The receipt service is busy. Please wait a moment and try again."
    ),
    ErrorCategory.AUTHENTICATION: (
        "OCR service authentication failed. Please contact support."
    ),
    ErrorCategory.SERVICE_ERROR: (
        "Failed to process receipt. Please fill in details manually."
    ),
}


class ReceiptCaptureError(Exception):
    """Base class for all pipeline errors."""

    category: ErrorCategory = ErrorCategory.SERVICE_ERROR

    def __init__(self, user_message: str, *, category: ErrorCategory | None = None):
        super().__init__(user_message)
        self.user_message = user_message
        if category is not None:
            self.category = category

    @property
    def is_transient(self) -> bool:
        return self.category.is_transient


class ExtractionError(ReceiptCaptureError):
    """OCR service unreachable, rejected the file, or returned garbage."""

    def __init__(self, category: ErrorCategory, user_message: str | None = None):
        super().__init__(user_message or _OCR_MESSAGES[category], category=category)


class ValidationError(ReceiptCaptureError):
    """A required field is missing at submission time."""

    category = ErrorCategory.VALIDATION

    def __init__(self, field: str, user_message: str | None = None):
        super().__init__(user_message or f"{_label(field)} is required.")
        self.field = field


class DuplicateReceiptError(ReceiptCaptureError):
    """The receipt number is already used by the same company."""

    category = ErrorCategory.DUPLICATE

    def __init__(self, receipt_number: str):
        super().__init__(
            f'Receipt number "{receipt_number}" already exists for this company. '
            "Please use a different receipt number."
        )
        self.receipt_number = receipt_number


class GlobalDuplicateReceiptError(ReceiptCaptureError):
    """The store rejected the number because another company uses it."""

    category = ErrorCategory.GLOBAL_DUPLICATE

    def __init__(self, receipt_number: str):
        super().__init__(
            f'Receipt number "{receipt_number}" is already used by another company. '
            "Please choose an entirely different numbering scheme, for example "
            "by prefixing the number with your company code."
        )
        self.receipt_number = receipt_number


class UploadError(ReceiptCaptureError):
    """File upload failed after all retry attempts."""

    category = ErrorCategory.UPLOAD

    def __init__(self, attempts: int):
        super().__init__(
            f"Failed to upload the receipt file after {attempts} attempts. "
            "The receipt was not saved."
        )
        self.attempts = attempts


class StoreError(ReceiptCaptureError):
    """Generic record store failure."""

    category = ErrorCategory.STORE

    def __init__(self, user_message: str = "Failed to save receipt. Please try again."):
        super().__init__(user_message)


class ConstraintError(Exception):
    """Raised by record stores when an insert violates a unique constraint."""

    def __init__(self, constraint: str | None, message: str = ""):
        super().__init__(message or f"unique constraint violated: {constraint}")
        self.constraint = constraint


def classify_http_status(status: int) -> ErrorCategory:
    """Map an OCR/upload HTTP status code to an error category."""
    if status in (401, 403):
        return ErrorCategory.AUTHENTICATION
    if status == 413:
        return ErrorCategory.FILE_TOO_LARGE
    if status == 415:
        return ErrorCategory.UNSUPPORTED_TYPE
    if status == 429:
        return ErrorCategory.RATE_LIMIT
    return ErrorCategory.SERVICE_ERROR


def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()
