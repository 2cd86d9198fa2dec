"""Per-company receipt-number duplicate check."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from receipt_capture.models import DuplicateCheckResult

if TYPE_CHECKING:
    from receipt_capture.adapters.base import RecordStore

logger = logging.getLogger(__name__)

RECEIPTS_TABLE = "receipts"


def check_exists(
    store: RecordStore, receipt_number: str | None, company_id: str | None
) -> bool:
    """Return True if ``receipt_number`` is already used by ``company_id``.

    Empty inputs mean "no duplicate". Store failures are logged and also
    reported as "no duplicate": this check is advisory, the store's own
    constraint is authoritative at insert time.
    """
    receipt_number = (receipt_number or "").strip()
    company_id = (company_id or "").strip()
    if not receipt_number or not company_id:
        return False

    try:
        rows = store.select(
            RECEIPTS_TABLE,
            {"receipt_number": receipt_number, "company_id": company_id},
        )
    except Exception:
        logger.warning(
            "Duplicate check failed for receipt %s, treating as unique",
            receipt_number,
            exc_info=True,
        )
        return False
    return len(rows) > 0


def check_duplicate(
    store: RecordStore, receipt_number: str | None, company_id: str | None
) -> DuplicateCheckResult:
    return DuplicateCheckResult(exists=check_exists(store, receipt_number, company_id))
