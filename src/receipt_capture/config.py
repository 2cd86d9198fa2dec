"""Configuration via environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_OCR_API_URL = "https://api.taggun.io/api/receipt/v1/verbose/file"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class OcrConfig:
    """OCR vendor connection configuration."""

    api_key: str
    api_url: str = DEFAULT_OCR_API_URL
    language: str = "de"
    location_hint: str = "Switzerland"
    timeout_s: float = 60.0


@dataclass(frozen=True)
class UploadConfig:
    """File upload configuration.

    When ``function_url`` is unset, files go to the local store at
    ``store_path`` instead of the remote upload function.
    """

    store_path: Path
    function_url: str | None = None
    api_key: str | None = None
    max_attempts: int = 3


def get_database_url() -> str:
    """Return the DATABASE_URL from the environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        msg = "DATABASE_URL environment variable is required"
        raise ValueError(msg)
    return url


def get_ocr_config() -> OcrConfig:
    """Build OCR configuration from environment variables.

    Required: OCR_API_KEY
    Optional: OCR_API_URL, OCR_LANGUAGE (default de),
    OCR_LOCATION_HINT (default Switzerland), OCR_TIMEOUT_S (default 60)
    """
    api_key = os.environ.get("OCR_API_KEY")
    if not api_key:
        msg = "OCR_API_KEY environment variable is required"
        raise ValueError(msg)

    return OcrConfig(
        api_key=api_key,
        api_url=os.environ.get("OCR_API_URL", DEFAULT_OCR_API_URL),
        language=os.environ.get("OCR_LANGUAGE", "de"),
        location_hint=os.environ.get("OCR_LOCATION_HINT", "Switzerland"),
        timeout_s=float(os.environ.get("OCR_TIMEOUT_S", "60")),
    )


def get_upload_config() -> UploadConfig:
    """Build upload configuration from environment variables.

    Optional: UPLOAD_FUNCTION_URL, UPLOAD_API_KEY,
    UPLOAD_STORE_PATH (default ./data/uploads), UPLOAD_MAX_ATTEMPTS (default 3)
    """
    max_attempts = int(os.environ.get("UPLOAD_MAX_ATTEMPTS", "3"))
    if max_attempts < 1:
        msg = "UPLOAD_MAX_ATTEMPTS must be at least 1"
        raise ValueError(msg)

    return UploadConfig(
        store_path=Path(os.environ.get("UPLOAD_STORE_PATH", "./data/uploads")).resolve(),
        function_url=os.environ.get("UPLOAD_FUNCTION_URL") or None,
        api_key=os.environ.get("UPLOAD_API_KEY") or None,
        max_attempts=max_attempts,
    )


def get_max_upload_bytes() -> int:
    """Return the caller-side upload size limit, defaulting to 10 MB."""
    return int(os.environ.get("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES)))
