"""Merge a normalized receipt with submission context into a storable record."""

from __future__ import annotations

from typing import TYPE_CHECKING

from receipt_capture.errors import ValidationError
from receipt_capture.models import PersistedReceipt

if TYPE_CHECKING:
    from receipt_capture.models import NormalizedReceipt, PaymentMethod, SubmissionContext

REQUIRED_FIELDS = (
    "company_id",
    "receipt_number",
    "merchant_name",
    "total_amount",
    "tax_amount",
    "transaction_date",
)


def missing_fields(receipt: NormalizedReceipt, company_id: str | None) -> list[str]:
    """List the mandatory fields that are still empty, in form order."""
    values = {
        "company_id": (company_id or "").strip(),
        "receipt_number": receipt.receipt_number.strip(),
        "merchant_name": (receipt.merchant.name or "").strip(),
        "total_amount": receipt.amounts.total,
        "tax_amount": receipt.amounts.tax,
        "transaction_date": receipt.transaction_date,
    }
    return [name for name in REQUIRED_FIELDS if values[name] in (None, "")]


def assemble_record(
    receipt: NormalizedReceipt,
    context: SubmissionContext,
    *,
    file_reference: str | None = None,
    payment_method: PaymentMethod | None = None,
) -> PersistedReceipt:
    """Build the ``PersistedReceipt`` for ``receipt``.

    Raises:
        ValidationError: for the first mandatory field that is empty.
    """
    missing = missing_fields(receipt, context.company_id)
    if missing:
        raise ValidationError(missing[0])

    return PersistedReceipt(
        company_id=context.company_id.strip(),
        created_by=context.created_by,
        receipt_number=receipt.receipt_number.strip(),
        date=context.submitted_at.date(),
        transaction_date=receipt.transaction_date,
        merchant=receipt.merchant.model_copy(
            update={"name": (receipt.merchant.name or "").strip()}
        ),
        amounts=receipt.amounts,
        vat_breakdown=receipt.vat_breakdown,
        line_items=receipt.line_items,
        payment_method=payment_method or receipt.payment_method,
        currency=receipt.currency,
        receipt_image_path=file_reference,
        language_hint=context.language_hint,
    )
