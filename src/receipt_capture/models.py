"""Domain models for receipt capture.

``RawOcrResult`` is the ingested vendor response, ``NormalizedReceipt`` the
pipeline output, and ``PersistedReceipt`` the record written to the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from receipt_capture.money import round_money


class PaymentMethod(str, Enum):
    """Payment methods offered by the receipt form."""

    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    CASH = "Cash"
    BANK_TRANSFER = "Bank Transfer"
    CHECK = "Check"
    OTHER = "Other"


# --- OCR ingestion -----------------------------------------------------------


class OcrEntity(BaseModel):
    """A single vendor-extracted field with its confidence score."""

    value: str | float | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class DetectedAmount(BaseModel):
    """A generic amount token and the label text next to it."""

    value: Decimal | None = None
    text: str = ""


class TaxLineEntry(BaseModel):
    """One vendor tax line, values left unparsed."""

    rate: Any = None
    base: Any = None
    amount: Any = None
    category: str | None = None


class RawLineItem(BaseModel):
    name: str = ""
    quantity: Any = None
    unit_price: Any = None
    total_price: Any = None


class RawOcrResult(BaseModel):
    """Semi-typed vendor OCR response. Never persisted."""

    entities: dict[str, OcrEntity] = Field(default_factory=dict)
    text: str = ""
    amounts: list[DetectedAmount] = Field(default_factory=list)
    tax_lines: list[TaxLineEntry] = Field(default_factory=list)
    line_items: list[RawLineItem] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    currency: str | None = None
    tracking_id: str | None = None

    def entity(self, name: str) -> OcrEntity | None:
        """Return the named entity if it carries a non-empty value."""
        found = self.entities.get(name)
        if found is None or found.value is None:
            return None
        if isinstance(found.value, str) and not found.value.strip():
            return None
        return found


# --- Normalized receipt ------------------------------------------------------


def _quantize(value: Decimal | None) -> Decimal | None:
    return round_money(value) if value is not None else None


class Merchant(BaseModel):
    name: str | None = None
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    vat_number: str | None = None


class Amounts(BaseModel):
    """Monetary totals, each non-negative with exactly two decimals."""

    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    paid: Decimal | None = None
    change: Decimal | None = None
    rounding: Decimal | None = None

    @field_validator("subtotal", "tax", "total", "paid", "change", "rounding")
    @classmethod
    def _two_decimals(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            msg = "amounts must be non-negative"
            raise ValueError(msg)
        return _quantize(value)


class VatLine(BaseModel):
    """One VAT rate with its base, tax and gross total."""

    rate: Decimal
    base: Decimal
    vat_amount: Decimal
    total: Decimal
    category: str | None = None

    @model_validator(mode="after")
    def _total_matches(self) -> VatLine:
        if abs(self.total - (self.base + self.vat_amount)) >= Decimal("0.01"):
            msg = "VAT line total must equal base + vat_amount"
            raise ValueError(msg)
        return self


class LineItem(BaseModel):
    name: str
    quantity: Decimal = Field(gt=0)
    unit_price: Decimal
    total_price: Decimal

    @classmethod
    def from_quantity_price(
        cls, name: str, quantity: Decimal, unit_price: Decimal
    ) -> LineItem:
        """Build a line item with ``total_price = round(quantity * unit_price)``."""
        unit_price = round_money(unit_price)
        return cls(
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=round_money(quantity * unit_price),
        )


class NormalizedReceipt(BaseModel):
    """Canonical pipeline output, owned by one in-progress submission."""

    receipt_number: str = Field(min_length=1)
    receipt_number_generated: bool = False
    merchant: Merchant = Field(default_factory=Merchant)
    transaction_date: date | None = None
    amounts: Amounts = Field(default_factory=Amounts)
    vat_breakdown: list[VatLine] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    payment_method: PaymentMethod | None = None
    currency: str = "CHF"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    raw_text: str = ""


class DuplicateCheckResult(BaseModel):
    exists: bool


# --- Submission --------------------------------------------------------------


@dataclass
class StoredFile:
    """Reference returned by a file uploader."""

    sharing_link: str
    item_id: str | None = None
    document_id: str | None = None
    path: str | None = None


@dataclass
class SubmissionContext:
    """User-selected context merged into the record at submission time."""

    company_id: str
    created_by: str
    company_name: str | None = None
    language_hint: str | None = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class PersistedReceipt(BaseModel):
    """Final record shape written to the ``receipts`` table."""

    company_id: str = Field(min_length=1)
    created_by: str
    receipt_number: str = Field(min_length=1)
    date: date
    transaction_date: date
    merchant: Merchant
    amounts: Amounts
    vat_breakdown: list[VatLine] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    payment_method: PaymentMethod | None = None
    currency: str = "CHF"
    receipt_image_path: str | None = None
    language_hint: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Flatten into the plain field-map the record store expects."""
        return {
            "company_id": self.company_id,
            "receipt_number": self.receipt_number,
            "date": self.date.isoformat(),
            "transaction_date": self.transaction_date.isoformat(),
            "merchant_name": self.merchant.name,
            "merchant_address": self.merchant.address,
            "merchant_vat": self.merchant.vat_number,
            "merchant_phone": self.merchant.phone,
            "merchant_website": self.merchant.website,
            "line_items": [
                {
                    "name": item.name,
                    "qty": float(item.quantity),
                    "unitPrice": float(item.unit_price),
                    "totalPrice": float(item.total_price),
                }
                for item in self.line_items
            ],
            "vat_breakdown": [
                {
                    "rate": float(line.rate),
                    "base": float(line.base),
                    "vatAmount": float(line.vat_amount),
                    "total": float(line.total),
                    "category": line.category,
                }
                for line in self.vat_breakdown
            ],
            "total_amount": _as_float(self.amounts.total),
            "tax_amount": _as_float(self.amounts.tax),
            "subtotal_amount": _as_float(self.amounts.subtotal),
            "paid_amount": _as_float(self.amounts.paid),
            "change_amount": _as_float(self.amounts.change),
            "payment_method": self.payment_method.value if self.payment_method else None,
            "currency": self.currency,
            "receipt_image_path": self.receipt_image_path,
            "language_hint": self.language_hint,
            "created_by": self.created_by,
        }


def _as_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None
