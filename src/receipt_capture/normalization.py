"""Monetary, VAT, line-item and payment-method normalization.

Every amount is rounded to cents before it feeds a derived computation,
so totals stay self-consistent at the cent level.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import TYPE_CHECKING

from receipt_capture.models import (
    Amounts,
    DetectedAmount,
    LineItem,
    PaymentMethod,
    RawLineItem,
    RawOcrResult,
    TaxLineEntry,
    VatLine,
)
from receipt_capture.money import (
    format_amount,
    parse_decimal,
    parse_money,
    round_money,
    round_rate,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

ONE = Decimal(1)
HUNDRED = Decimal(100)

# Labels that mark a detected amount as a summary line rather than an item.
NON_ITEM_LABELS = re.compile(
    r"(?i)\b(?:total|summe|gesamt|subtotal|zwischensumme|tax|mwst|vat|cash|bar"
    r"|r[üu]ckgeld|change|rundung|rounding)\b"
)

_SUBTOTAL_LABELS = re.compile(r"(?i)\b(?:zwischensumme|subtotal|sub-total)\b")
_ROUNDING_LABELS = re.compile(r"(?i)\b(?:rundung|rounding)\b")
_CHANGE_LABELS = re.compile(r"(?i)(?:\br[üu]ckgeld\b|\bchange\b|\bwechselgeld\b)")

# Ordered: the first method whose keywords appear in the transcript wins.
PAYMENT_KEYWORDS: tuple[tuple[PaymentMethod, tuple[str, ...]], ...] = (
    (
        PaymentMethod.CREDIT_CARD,
        ("visa", "mastercard", "master card", "amex", "american express", "kreditkarte", "credit card"),
    ),
    (
        PaymentMethod.DEBIT_CARD,
        ("maestro", "debit", "debitkarte", "ec-karte", "ec karte", "postfinance", "v pay"),
    ),
    (PaymentMethod.CASH, ("bar", "barzahlung", "cash", "espèces", "especes")),
    (PaymentMethod.BANK_TRANSFER, ("überweisung", "ueberweisung", "bank transfer", "iban")),
)


def normalize_amounts(raw: RawOcrResult) -> Amounts:
    """Derive the receipt totals from entities and labelled amount tokens."""
    total = _entity_money(raw, "totalAmount")
    tax = _entity_money(raw, "taxAmount")
    paid = _entity_money(raw, "paidAmount")

    subtotal = _labelled_amount(raw.amounts, _SUBTOTAL_LABELS)
    if subtotal is None and raw.line_items:
        prices = [parse_money(item.total_price) for item in raw.line_items]
        subtotal = round_money(sum((p for p in prices if p is not None), Decimal(0)))

    rounding = _labelled_amount(raw.amounts, _ROUNDING_LABELS)
    if rounding is None:
        rounding = _entity_money(raw, "roundingAmount")

    change = _labelled_amount(raw.amounts, _CHANGE_LABELS)
    if change is None and paid is not None and total is not None and total > 0:
        difference = round_money(paid - total)
        change = difference if difference > 0 else None

    return Amounts(
        subtotal=_non_negative(subtotal),
        tax=_non_negative(tax),
        total=_non_negative(total),
        paid=_non_negative(paid),
        change=_non_negative(change),
        rounding=abs(rounding) if rounding is not None else None,
    )


def _entity_money(raw: RawOcrResult, name: str) -> Decimal | None:
    entity = raw.entity(name)
    return parse_money(entity.value) if entity else None


def _labelled_amount(
    amounts: Iterable[DetectedAmount], labels: re.Pattern[str]
) -> Decimal | None:
    for token in amounts:
        if token.value is not None and labels.search(token.text):
            return round_money(token.value)
    return None


def _non_negative(value: Decimal | None) -> Decimal | None:
    if value is None or value < 0:
        return None
    return value


def build_vat_breakdown(
    tax_lines: Iterable[TaxLineEntry],
    total: Decimal | None,
    tax: Decimal | None,
) -> list[VatLine]:
    """Reconstruct the VAT breakdown.

    Itemized tax lines are preferred. Entries whose base or rate is zero or
    unparseable are noise and skipped. Only when no itemized line survives
    and both ``total`` and ``tax`` are positive is a single synthetic line
    derived from them.
    """
    lines = [line for entry in tax_lines if (line := _itemized_line(entry)) is not None]
    if lines:
        return lines

    fallback = _fallback_line(total, tax)
    return [fallback] if fallback is not None else []


def _itemized_line(entry: TaxLineEntry) -> VatLine | None:
    base = parse_decimal(entry.base)
    rate = parse_decimal(entry.rate)
    if base is None or rate is None or base == 0 or rate == 0:
        logger.debug("Skipping tax line with base=%r rate=%r", entry.base, entry.rate)
        return None

    base = round_money(base)
    rate = round_money(rate)
    vat_amount = round_money(base * rate / HUNDRED)
    return VatLine(
        rate=rate,
        base=base,
        vat_amount=vat_amount,
        total=round_money(base + vat_amount),
        category=entry.category,
    )


def _fallback_line(total: Decimal | None, tax: Decimal | None) -> VatLine | None:
    if total is None or tax is None or total <= 0 or tax <= 0:
        return None
    total = round_money(total)
    tax = round_money(tax)
    base = round_money(total - tax)
    if base <= 0:
        return None
    return VatLine(
        rate=round_rate(tax / base * HUNDRED),
        base=base,
        vat_amount=tax,
        total=total,
    )


def build_line_items(raw: RawOcrResult) -> list[LineItem]:
    """Structured line items, else items rebuilt from detected amounts."""
    items = [item for entry in raw.line_items if (item := _structured_item(entry)) is not None]
    if items:
        return items
    return _items_from_amounts(raw.amounts)


def _structured_item(entry: RawLineItem) -> LineItem | None:
    name = entry.name
    quantity = parse_decimal(entry.quantity)
    unit_price = parse_money(entry.unit_price)
    total_price = parse_money(entry.total_price)

    if not name or (unit_price is None and total_price is None):
        return None
    if quantity is None or quantity <= 0:
        quantity = ONE
    if unit_price is None:
        unit_price = round_money(total_price / quantity)  # type: ignore[operator]
    return LineItem.from_quantity_price(name, quantity, unit_price)


def _items_from_amounts(amounts: Iterable[DetectedAmount]) -> list[LineItem]:
    items: list[LineItem] = []
    for token in amounts:
        if token.value is None or token.value <= 0 or not token.text.strip():
            continue
        if NON_ITEM_LABELS.search(token.text):
            continue
        name = re.split(r"\d", token.text, maxsplit=1)[0].strip() or token.text.strip()
        items.append(LineItem.from_quantity_price(name, ONE, token.value))
    return items


def infer_payment_method(text: str) -> PaymentMethod | None:
    """Scan the transcript for payment keywords; first matching method wins."""
    if not text:
        return None
    for method, keywords in PAYMENT_KEYWORDS:
        for keyword in keywords:
            if re.search(rf"(?i)(?<!\w){re.escape(keyword)}(?!\w)", text):
                logger.debug("Payment method %s matched keyword %r", method.value, keyword)
                return method
    return None


def format_vat_details(lines: Iterable[VatLine], currency: str = "CHF") -> str | None:
    """Render the VAT breakdown as the multi-line text shown on the form."""
    blocks = []
    for line in lines:
        prefix = f"{line.category} " if line.category else ""
        blocks.append(
            f"{prefix}MwSt {line.rate:.1f}%\n"
            f"Basis: {currency} {format_amount(line.base)}\n"
            f"MwSt: {currency} {format_amount(line.vat_amount)}\n"
            f"Total: {currency} {format_amount(line.total)}"
        )
    return "\n\n".join(blocks) or None
