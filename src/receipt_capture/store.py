"""Local filesystem receipt file store."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any

from slugify import slugify

from receipt_capture.models import StoredFile

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


class LocalFileStore:
    """``FileUploader`` writing receipt files under a local root.

    Directory layout: {root}/{YYYY}/{MM}/{YYYY-MM-DD}__{merchant}__{amount}{ext}
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def upload(self, data: bytes, metadata: Mapping[str, Any]) -> StoredFile:
        """Store ``data`` using the business context in ``metadata``."""
        receipt_date = _as_date(metadata.get("transaction_date")) or date.today()
        merchant = str(metadata.get("merchant_name") or "receipt")
        amount = metadata.get("total_amount")
        suffix = PurePath(str(metadata.get("filename") or "")).suffix.lower() or ".bin"

        relative = self.save(
            receipt_date,
            merchant,
            Decimal(str(amount)) if amount is not None else None,
            data,
            suffix=suffix,
        )
        full_path = self.get_path(relative)
        return StoredFile(
            sharing_link=full_path.as_uri(),
            item_id=relative,
            path=relative,
        )

    def save(
        self,
        receipt_date: date,
        merchant: str,
        amount: Decimal | None,
        data: bytes,
        *,
        suffix: str = ".pdf",
    ) -> str:
        """Save the file and return its path relative to the store root."""
        slug = self._slugify_merchant(merchant) or "receipt"
        dir_path = self.root / str(receipt_date.year) / f"{receipt_date.month:02d}"
        dir_path.mkdir(parents=True, exist_ok=True)

        stem = f"{receipt_date.isoformat()}__{slug}"
        if amount is not None:
            stem = f"{stem}__{amount:.2f}"
        file_path = dir_path / f"{stem}{suffix}"

        # Same receipt stored twice gets a numeric suffix
        counter = 1
        while file_path.exists():
            counter += 1
            file_path = dir_path / f"{stem}_{counter}{suffix}"

        file_path.write_bytes(data)
        logger.info("Stored receipt file %s", file_path)
        return file_path.relative_to(self.root).as_posix()

    def get_path(self, relative_path: str) -> Path:
        """Return the absolute path for a relative store path."""
        return self.root / relative_path

    def exists(self, relative_path: str) -> bool:
        """Check whether a file exists in the store."""
        return (self.root / relative_path).exists()

    @staticmethod
    def _slugify_merchant(merchant: str) -> str:
        """Convert merchant name to a filesystem-safe slug, max 50 chars."""
        return str(slugify(merchant, max_length=50))


def _as_date(value: object) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None
