"""Ingest raw Taggun OCR responses into ``RawOcrResult``."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from receipt_capture.errors import ErrorCategory, ExtractionError
from receipt_capture.models import (
    DetectedAmount,
    OcrEntity,
    RawLineItem,
    RawOcrResult,
    TaxLineEntry,
)
from receipt_capture.money import parse_decimal

logger = logging.getLogger(__name__)

TOP_LEVEL_ENTITIES = (
    "totalAmount",
    "taxAmount",
    "paidAmount",
    "date",
    "merchantName",
    "merchantAddress",
    "merchantCity",
    "merchantState",
    "merchantPostalCode",
    "merchantCountryCode",
    "merchantTaxId",
)

NESTED_ENTITIES = (
    "receiptNumber",
    "invoiceNumber",
    "merchantTaxId",
    "roundingAmount",
)


def parse_ocr_payload(payload: object) -> RawOcrResult:
    """Convert a vendor JSON response into a ``RawOcrResult``.

    Unknown or malformed sub-structures are skipped. Only a payload that
    is not a JSON object at all is treated as an extraction failure.
    """
    if not isinstance(payload, Mapping):
        logger.warning("OCR payload is not an object: %s", type(payload).__name__)
        raise ExtractionError(ErrorCategory.SERVICE_ERROR)

    nested = _mapping(payload.get("entities"))

    entities: dict[str, OcrEntity] = {}
    for name in TOP_LEVEL_ENTITIES:
        entity = _parse_entity(payload.get(name))
        if entity is not None:
            entities[name] = entity
    for name in NESTED_ENTITIES:
        entity = _parse_entity(nested.get(name))
        # Top-level entities win over nested duplicates.
        if entity is not None and name not in entities:
            entities[name] = entity

    total = _mapping(payload.get("totalAmount"))
    currency = total.get("currencyCode")

    return RawOcrResult(
        entities=entities,
        text=_transcript(payload.get("text")),
        amounts=_parse_amounts(payload.get("amounts")),
        tax_lines=_parse_tax_lines(nested.get("multiTaxLineItems")),
        line_items=_parse_line_items(nested.get("productLineItems")),
        confidence=_clamp(payload.get("confidenceLevel")),
        currency=str(currency) if currency else None,
        tracking_id=_str_or_none(payload.get("trackingId")),
    )


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _str_or_none(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clamp(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return min(max(number, 0.0), 1.0)


def _parse_entity(raw: object) -> OcrEntity | None:
    """Parse a ``{data, confidenceLevel}`` entity."""
    entity = _mapping(raw)
    data = entity.get("data")
    if data is None or isinstance(data, (Mapping, list, bool)):
        return None
    if isinstance(data, str) and not data.strip():
        return None
    value: str | float = data if isinstance(data, str) else float(data)
    return OcrEntity(value=value, confidence=_clamp(entity.get("confidenceLevel")))


def _transcript(raw: object) -> str:
    if isinstance(raw, str):
        return raw
    text = _mapping(raw).get("text")
    return text if isinstance(text, str) else ""


def _parse_amounts(raw: object) -> list[DetectedAmount]:
    if not isinstance(raw, list):
        return []
    amounts: list[DetectedAmount] = []
    for token in raw:
        token_map = _mapping(token)
        if not token_map:
            continue
        amounts.append(
            DetectedAmount(
                value=parse_decimal(token_map.get("data")),
                text=str(token_map.get("text") or ""),
            )
        )
    return amounts


def _unwrap(value: object) -> object:
    """Return ``value["data"]`` for ``{data: ...}`` wrappers, else ``value``."""
    if isinstance(value, Mapping):
        return value.get("data")
    return value


def _parse_tax_lines(raw: object) -> list[TaxLineEntry]:
    """Accept flat, ``data``-nested and Taggun ``taxRate``/``grossAmount`` shapes."""
    if not isinstance(raw, list):
        return []
    lines: list[TaxLineEntry] = []
    for entry in raw:
        entry_map = _mapping(entry)
        if not entry_map:
            continue
        data = _mapping(entry_map.get("data"))

        rate: object = entry_map.get("rate") or data.get("rate")
        if not rate and data.get("taxRate") is not None:
            fraction = parse_decimal(_unwrap(data.get("taxRate")))
            rate = fraction * 100 if fraction is not None else None

        base = (
            entry_map.get("base")
            or data.get("base")
            or _unwrap(data.get("grossAmount"))
        )
        amount = (
            entry_map.get("amount")
            or data.get("amount")
            or _unwrap(data.get("taxAmount"))
            or _unwrap(data.get("netAmount"))
        )
        category = (
            entry_map.get("category")
            or data.get("category")
            or data.get("taxCategory")
        )
        lines.append(
            TaxLineEntry(
                rate=rate,
                base=base,
                amount=amount,
                category=_str_or_none(_unwrap(category)),
            )
        )
    return lines


def _parse_line_items(raw: object) -> list[RawLineItem]:
    if not isinstance(raw, list):
        return []
    items: list[RawLineItem] = []
    for entry in raw:
        data = _mapping(_mapping(entry).get("data"))
        if not data:
            continue
        items.append(
            RawLineItem(
                name=str(_unwrap(data.get("name")) or "").strip(),
                quantity=_unwrap(data.get("quantity")),
                unit_price=_unwrap(data.get("unitPrice")),
                total_price=_unwrap(data.get("totalPrice")),
            )
        )
    return items
