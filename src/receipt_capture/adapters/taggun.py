"""Taggun verbose receipt OCR client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests

from receipt_capture.errors import ErrorCategory, ExtractionError, classify_http_status

if TYPE_CHECKING:
    from collections.abc import Mapping

    from receipt_capture.config import OcrConfig

logger = logging.getLogger(__name__)


class TaggunOcrService:
    """OCR service backed by the Taggun ``verbose/file`` endpoint.

    Failures never leak vendor text to callers: every non-2xx response,
    transport error or non-JSON body becomes an :class:`ExtractionError`
    with a mapped category.
    """

    def __init__(self, config: OcrConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def invoke(
        self,
        data: bytes,
        *,
        filename: str,
        language: str | None = None,
        location_hint: str | None = None,
    ) -> Mapping[str, Any]:
        form = {
            "extractLineItems": "true",
            "extractTime": "true",
            "language": language or self.config.language,
            "refresh": "true",
            "incognito": "false",
            "near": location_hint or self.config.location_hint,
        }
        headers = {"accept": "application/json", "apikey": self.config.api_key}

        logger.info("Submitting %s (%d bytes) for OCR", filename, len(data))
        try:
            response = self.session.post(
                self.config.api_url,
                headers=headers,
                data=form,
                files={"file": (filename, data)},
                timeout=self.config.timeout_s,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("OCR request failed: %s", exc)
            raise ExtractionError(ErrorCategory.NETWORK) from exc
        except requests.RequestException as exc:
            logger.warning("OCR request failed: %s", exc)
            raise ExtractionError(ErrorCategory.SERVICE_ERROR) from exc

        if not response.ok:
            category = classify_http_status(response.status_code)
            logger.warning(
                "OCR service returned %s %s (%s)",
                response.status_code,
                response.reason,
                category.value,
            )
            raise ExtractionError(category)

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("OCR service returned a non-JSON body")
            raise ExtractionError(ErrorCategory.SERVICE_ERROR) from exc

        logger.debug("OCR payload: %s", payload)
        return payload
