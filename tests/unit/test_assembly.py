"""Tests for receipt_capture.assembly."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from receipt_capture.assembly import assemble_record, missing_fields
from receipt_capture.errors import ErrorCategory, ValidationError
from receipt_capture.models import (
    Amounts,
    Merchant,
    NormalizedReceipt,
    PaymentMethod,
    SubmissionContext,
)


@pytest.fixture
def receipt() -> NormalizedReceipt:
    return NormalizedReceipt(
        receipt_number="A1",
        merchant=Merchant(name=" Migros "),
        transaction_date=date(2024, 3, 12),
        amounts=Amounts(total=Decimal("54.30"), tax=Decimal("4.30")),
        payment_method=PaymentMethod.CASH,
    )


class TestAssembleRecord:
    """Tests for assemble_record()."""

    def test_complete_record(
        self, receipt: NormalizedReceipt, context: SubmissionContext
    ) -> None:
        record = assemble_record(
            receipt, context, file_reference="https://files.example.com/share/abc"
        )

        assert record.company_id == "company-x"
        assert record.created_by == "admin-1"
        assert record.merchant.name == "Migros"
        assert record.date == date(2024, 3, 15)
        assert record.transaction_date == date(2024, 3, 12)
        assert record.receipt_image_path == "https://files.example.com/share/abc"
        assert record.payment_method == PaymentMethod.CASH

    def test_optional_fields_null(
        self, receipt: NormalizedReceipt, context: SubmissionContext
    ) -> None:
        row = assemble_record(receipt, context).to_row()

        assert row["merchant_address"] is None
        assert row["merchant_vat"] is None
        assert row["line_items"] == []
        assert row["subtotal_amount"] is None
        assert row["receipt_image_path"] is None

    def test_payment_method_override(
        self, receipt: NormalizedReceipt, context: SubmissionContext
    ) -> None:
        record = assemble_record(receipt, context, payment_method=PaymentMethod.DEBIT_CARD)

        assert record.payment_method == PaymentMethod.DEBIT_CARD

    def test_missing_company(
        self, receipt: NormalizedReceipt, context: SubmissionContext
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            assemble_record(receipt, replace(context, company_id=""))

        assert exc_info.value.field == "company_id"
        assert exc_info.value.category == ErrorCategory.VALIDATION

    def test_empty_merchant_name(
        self, receipt: NormalizedReceipt, context: SubmissionContext
    ) -> None:
        blank = receipt.model_copy(update={"merchant": Merchant(name="  ")})

        with pytest.raises(ValidationError, match="Merchant name is required"):
            assemble_record(blank, context)

    @pytest.mark.parametrize(
        ("update", "field"),
        [
            ({"amounts": Amounts(tax=Decimal("4.30"))}, "total_amount"),
            ({"amounts": Amounts(total=Decimal("54.30"))}, "tax_amount"),
            ({"transaction_date": None}, "transaction_date"),
        ],
    )
    def test_required_fields(
        self,
        receipt: NormalizedReceipt,
        context: SubmissionContext,
        update: dict[str, object],
        field: str,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            assemble_record(receipt.model_copy(update=update), context)

        assert exc_info.value.field == field


class TestMissingFields:
    """Tests for missing_fields()."""

    def test_lists_all_in_order(self) -> None:
        empty = NormalizedReceipt(receipt_number="R-20240315-0001")

        assert missing_fields(empty, None) == [
            "company_id",
            "merchant_name",
            "total_amount",
            "tax_amount",
            "transaction_date",
        ]

    def test_zero_tax_counts_as_present(self, receipt: NormalizedReceipt) -> None:
        zero = receipt.model_copy(update={"amounts": Amounts(total=Decimal("5"), tax=Decimal("0"))})

        assert missing_fields(zero, "X") == []
