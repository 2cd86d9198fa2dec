"""Field extraction cascade over ingested OCR results.

Each field is an ordered list of strategies ``(RawOcrResult) -> value | None``;
the first strategy returning a value wins. Structured vendor entities come
before regular expressions over the transcript because they carry
confidence scores.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable, Sequence
from datetime import UTC, date, datetime
from typing import TypeVar

from receipt_capture.models import Merchant, NormalizedReceipt, RawOcrResult
from receipt_capture.normalization import (
    build_line_items,
    build_vat_breakdown,
    infer_payment_method,
    normalize_amounts,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Strategy = Callable[[RawOcrResult], T | None]

_RECEIPT_NUMBER_JUNK = re.compile(r"[^0-9A-Za-z/-]")

RECEIPT_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?i)\b(?:beleg|quittung|rechnung|receipt|invoice|bon|ticket|facture|re[çc]u)\b"
        r"[\s-]*(?:nr\.?|nummer|no\.?|number|num[ée]ro|#)?[\s:.#]*"
        r"((?=[A-Z/-]*\d)[A-Z0-9][A-Z0-9/-]{2,})"
    ),
    # Generic "Nr." label, skipping phone and VAT lines.
    re.compile(
        r"(?im)^(?!.*\b(?:tel|telefon|phone|fax|mwst|ust|uid|vat|tva)\b)"
        r"[^\n]*?\b(?:nr|nummer|no)\.?[\s:#]+"
        r"((?!CHE)(?=[A-Z/-]*\d)[A-Z0-9][A-Z0-9/-]{2,})"
    ),
    re.compile(r"(?i)#\s*((?=[A-Z/-]*\d)[A-Z0-9][A-Z0-9/-]{2,})"),
    re.compile(r"\b((?:RE|RG|INV|BN|QU)-?\d{3,}(?:[/-]\d+)*)\b"),
    # Register footer "ddd ddd N N", skipping phone lines.
    re.compile(
        r"(?im)^(?!.*\b(?:tel|telefon|phone|fax|t)\b)[^\n]*?\b\d{3}\s+\d{3}\s+(\d+)\s+\d+$"
    ),
)

VAT_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?i)(?:MWST|USt|VAT|UID)[-.]?(?:Nr\.?|Nummer)?[:\s]*(CHE-?[\d.-]+)"),
    re.compile(r"(?i)(?:MWST|USt|VAT|UID)[-.]?(?:Nr\.?|Nummer)?[:\s]*([\d.-]{6,})"),
    re.compile(r"(?i)(CHE-?[\d.-]+)"),
    re.compile(r"(?i)(?:TVA|MWST|VAT)\s*(?:No\.?|Nr\.?|Nummer)?[:\s]*(\d{3,}(?:[.-]\d+)*)"),
)

PHONE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?i)\b(?:Tel(?:efon)?|Phone|T)\b[.:]?[\s-]*(\+?[\d \t()/-]{8,}\d)"),
)

WEBSITE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?i)((?:https?://)?www\.[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}"
        r"|https?://[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,})"
    ),
)

DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(\d{1,2})[./](\d{1,2})[./](\d{4})\b"),
    re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b"),
    re.compile(r"\b(\d{1,2})[./](\d{1,2})[./](\d{2})\b"),
)

_ADDRESS_PARTS = (
    "merchantAddress",
    "merchantCity",
    "merchantState",
    "merchantPostalCode",
    "merchantCountryCode",
)


# --- Cascade machinery -------------------------------------------------------


def run_cascade(strategies: Sequence[Strategy[T]], raw: RawOcrResult) -> T | None:
    """Evaluate strategies in order and return the first usable value."""
    for strategy in strategies:
        value = strategy(raw)
        if value is not None:
            logger.debug("Cascade matched via %s", getattr(strategy, "__name__", strategy))
            return value
    return None


def entity_strategy(
    name: str, clean: Callable[[str], str | None] | None = None
) -> Strategy[str]:
    """Look up a structured entity, optionally cleaning its value."""

    def strategy(raw: RawOcrResult) -> str | None:
        entity = raw.entity(name)
        if entity is None:
            return None
        value = _entity_text(entity.value)
        return clean(value) if clean else (value or None)

    strategy.__name__ = f"entity:{name}"
    return strategy


def regex_strategy(
    patterns: Sequence[re.Pattern[str]],
    clean: Callable[[str], str | None] | None = None,
    group: int = 1,
) -> Strategy[str]:
    """Search the transcript with each pattern, returning the first capture."""

    def strategy(raw: RawOcrResult) -> str | None:
        if not raw.text:
            return None
        for pattern in patterns:
            match = pattern.search(raw.text)
            if match is None:
                continue
            value = match.group(group).strip()
            value = clean(value) if clean else value
            if value:
                return value
        return None

    strategy.__name__ = "regex"
    return strategy


def _entity_text(value: str | float | None) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# --- Receipt number ----------------------------------------------------------


def clean_receipt_number(value: str) -> str | None:
    """Strip everything except alphanumerics, '-' and '/'."""
    cleaned = _RECEIPT_NUMBER_JUNK.sub("", value)
    return cleaned or None


def generate_receipt_number(
    now: datetime | None = None, rng: random.Random | None = None
) -> str:
    """Synthesize a fallback receipt number, ``R-YYYYMMDD-NNNN``."""
    now = now or datetime.now(tz=UTC)
    suffix = (rng or random).randint(0, 9999)
    return f"R-{now:%Y%m%d}-{suffix:04d}"


RECEIPT_NUMBER_CASCADE: tuple[Strategy[str], ...] = (
    entity_strategy("receiptNumber", clean_receipt_number),
    entity_strategy("invoiceNumber", clean_receipt_number),
    regex_strategy(RECEIPT_NUMBER_PATTERNS, clean_receipt_number),
)


def extract_receipt_number(raw: RawOcrResult) -> str | None:
    return run_cascade(RECEIPT_NUMBER_CASCADE, raw)


# --- Merchant ----------------------------------------------------------------


def _merchant_address(raw: RawOcrResult) -> str | None:
    parts = []
    for name in _ADDRESS_PARTS:
        entity = raw.entity(name)
        if entity is not None:
            text = _entity_text(entity.value)
            if text and text not in parts:
                parts.append(text)
    return ", ".join(parts) or None


def _strip_trailing_punctuation(value: str) -> str | None:
    return value.strip(" .-") or None


MERCHANT_NAME_CASCADE: tuple[Strategy[str], ...] = (entity_strategy("merchantName"),)

MERCHANT_ADDRESS_CASCADE: tuple[Strategy[str], ...] = (_merchant_address,)

# Text patterns come first here: the vendor's merchantTaxId is often the
# bare number without the CHE prefix.
VAT_NUMBER_CASCADE: tuple[Strategy[str], ...] = (
    regex_strategy(VAT_NUMBER_PATTERNS, _strip_trailing_punctuation),
    entity_strategy("merchantTaxId"),
)

PHONE_CASCADE: tuple[Strategy[str], ...] = (regex_strategy(PHONE_PATTERNS),)

WEBSITE_CASCADE: tuple[Strategy[str], ...] = (regex_strategy(WEBSITE_PATTERNS, group=0),)


def extract_merchant(raw: RawOcrResult) -> Merchant:
    return Merchant(
        name=run_cascade(MERCHANT_NAME_CASCADE, raw),
        address=run_cascade(MERCHANT_ADDRESS_CASCADE, raw),
        phone=run_cascade(PHONE_CASCADE, raw),
        website=run_cascade(WEBSITE_CASCADE, raw),
        vat_number=run_cascade(VAT_NUMBER_CASCADE, raw),
    )


# --- Transaction date --------------------------------------------------------


def parse_receipt_date(value: str) -> date | None:
    """Parse ISO timestamps and day-first European dates."""
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for pattern in DATE_PATTERNS:
        match = pattern.search(value)
        if match is not None:
            return _date_from_match(match)
    return None


def _date_from_match(match: re.Match[str]) -> date | None:
    first, second, third = match.groups()
    if len(first) == 4:
        year, month, day = int(first), int(second), int(third)
    else:
        day, month, year = int(first), int(second), int(third)
        if year < 100:
            year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _entity_date(raw: RawOcrResult) -> date | None:
    entity = raw.entity("date")
    if entity is None or not isinstance(entity.value, str):
        return None
    return parse_receipt_date(entity.value)


def _text_date(raw: RawOcrResult) -> date | None:
    for pattern in DATE_PATTERNS:
        for match in pattern.finditer(raw.text):
            parsed = _date_from_match(match)
            if parsed is not None:
                return parsed
    return None


DATE_CASCADE: tuple[Strategy[date], ...] = (_entity_date, _text_date)


# --- Whole receipt -----------------------------------------------------------


def extract_receipt(
    raw: RawOcrResult,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> NormalizedReceipt:
    """Derive a ``NormalizedReceipt`` from an ingested OCR result.

    Only the receipt number gets a synthetic fallback; every other field
    stays unset when nothing usable was found, so the form can prompt for
    manual entry.
    """
    receipt_number = extract_receipt_number(raw)
    generated = receipt_number is None
    if receipt_number is None:
        receipt_number = generate_receipt_number(now, rng)
        logger.info("No receipt number found, generated %s", receipt_number)

    amounts = normalize_amounts(raw)

    return NormalizedReceipt(
        receipt_number=receipt_number,
        receipt_number_generated=generated,
        merchant=extract_merchant(raw),
        transaction_date=run_cascade(DATE_CASCADE, raw),
        amounts=amounts,
        vat_breakdown=build_vat_breakdown(raw.tax_lines, amounts.total, amounts.tax),
        line_items=build_line_items(raw),
        payment_method=infer_payment_method(raw.text),
        currency=raw.currency or "CHF",
        confidence=raw.confidence,
        raw_text=raw.text,
    )
