"""Client for the remote file-upload function."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import requests

from receipt_capture.models import StoredFile

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


class FunctionUploader:
    """``FileUploader`` posting multipart uploads to a hosted function.

    The function answers ``{"data": {"filePath", "webUrl", "sharingLink",
    "itemId", "document": {"id"}}}``. Any failure is raised as-is; retrying
    is the caller's concern.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout_s: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def upload(self, data: bytes, metadata: Mapping[str, Any]) -> StoredFile:
        filename = str(metadata.get("filename") or "receipt")
        form = {
            "companyId": str(metadata.get("company_id") or ""),
            "uploadedBy": str(metadata.get("uploaded_by") or ""),
            "reportType": "receipt",
            "metadata": json.dumps(dict(metadata), default=str),
        }
        headers = {"authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        response = self.session.post(
            self.url,
            headers=headers,
            data=form,
            files={"file": (filename, data)},
            timeout=self.timeout_s,
        )
        response.raise_for_status()
        body = response.json()

        result = body.get("data") if isinstance(body, dict) else None
        if not isinstance(result, dict):
            msg = "upload response is missing its data object"
            raise ValueError(msg)

        link = result.get("sharingLink") or result.get("webUrl")
        if not link:
            msg = "upload response has no sharing link"
            raise ValueError(msg)

        document = result.get("document") or {}
        logger.info("Uploaded %s to %s", filename, result.get("filePath"))
        return StoredFile(
            sharing_link=link,
            item_id=result.get("itemId"),
            document_id=result.get("documentId") or document.get("id"),
            path=result.get("filePath"),
        )
