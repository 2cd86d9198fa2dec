"""Monetary parsing and rounding.

All amounts are ``Decimal`` rounded half-up to two places. Parsing
accepts Swiss, German, French and English number formatting.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
TENTH = Decimal("0.1")

# Amounts of 10^13 and above are OCR noise (barcodes, card numbers).
MAX_EXPONENT = 12

_CURRENCY = re.compile(r"(?i)\b(?:chf|eur|usd|sfr|fr)\b\.?|[€$£]")
_SWISS_DASH = re.compile(r"[.,]-+$")


def parse_decimal(value: object) -> Decimal | None:
    """Parse a vendor amount into a Decimal, or None when unusable.

    >>> parse_decimal("1'234.50")
    Decimal('1234.50')
    >>> parse_decimal("1.234,56")
    Decimal('1234.56')
    >>> parse_decimal("12.-")
    Decimal('12')
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return _plausible(value)
    if isinstance(value, (int, float)):
        return _plausible(Decimal(str(value)))
    if not isinstance(value, str):
        return None

    text = _CURRENCY.sub("", value).strip()
    text = _SWISS_DASH.sub("", text)
    text = re.sub(r"[\s'’]", "", text)
    if not text:
        return None

    negative = text.startswith("-") or text.endswith("-")
    text = text.strip("+-")
    text = _normalize_separators(text)
    if not re.fullmatch(r"\d+(?:\.\d+)?", text):
        return None

    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return _plausible(-result if negative else result)


def _plausible(value: Decimal) -> Decimal | None:
    if not value.is_finite() or value.adjusted() > MAX_EXPONENT:
        return None
    return value


def _normalize_separators(text: str) -> str:
    """Resolve which of '.' and ',' is the decimal separator."""
    if "," in text and "." in text:
        # Whichever comes last is the decimal separator.
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if "," in text:
        head, _, tail = text.rpartition(",")
        if text.count(",") == 1 and len(tail) != 3:
            return f"{head}.{tail}"
        if text.count(",") == 1 and len(tail) == 3 and head == "0":
            return f"0.{tail}"
        return text.replace(",", "")
    if text.count(".") > 1:
        head, _, tail = text.rpartition(".")
        if len(tail) == 3:
            return text.replace(".", "")
        return head.replace(".", "") + "." + tail
    return text


def round_money(value: Decimal | int | float) -> Decimal:
    """Round half-up to two decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_rate(value: Decimal | int | float) -> Decimal:
    """Round a percentage half-up to one decimal place."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TENTH, rounding=ROUND_HALF_UP)


def parse_money(value: object) -> Decimal | None:
    """Parse and round to cents in one step."""
    parsed = parse_decimal(value)
    return round_money(parsed) if parsed is not None else None


def format_amount(value: Decimal) -> str:
    """Render an amount with exactly two fractional digits."""
    return f"{round_money(value):.2f}"
