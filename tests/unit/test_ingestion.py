"""Tests for receipt_capture.ingestion."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from receipt_capture.errors import ErrorCategory, ExtractionError
from receipt_capture.ingestion import parse_ocr_payload


class TestParseOcrPayload:
    """Tests for parse_ocr_payload()."""

    def test_top_level_entities(self, taggun_payload: dict[str, Any]) -> None:
        raw = parse_ocr_payload(taggun_payload)

        merchant = raw.entity("merchantName")
        assert merchant is not None
        assert merchant.value == "Migros"
        assert merchant.confidence == 0.95
        total = raw.entity("totalAmount")
        assert total is not None
        assert total.value == 54.3
        assert raw.currency == "CHF"
        assert raw.confidence == 0.92
        assert raw.tracking_id == "trk-123"
        assert raw.text.startswith("Migros\n")

    def test_amount_tokens(self, taggun_payload: dict[str, Any]) -> None:
        raw = parse_ocr_payload(taggun_payload)

        assert [a.text for a in raw.amounts][:2] == ["Brot 3.50", "Milch 1.95"]
        assert raw.amounts[0].value == Decimal("3.5")

    def test_nested_entities(self, numbered_payload: dict[str, Any]) -> None:
        raw = parse_ocr_payload(numbered_payload)

        number = raw.entity("receiptNumber")
        assert number is not None
        assert number.value == "A1"

    def test_top_level_wins_over_nested(self) -> None:
        payload = {
            "merchantTaxId": {"data": "CHE-111.111.111"},
            "entities": {"merchantTaxId": {"data": "CHE-222.222.222"}},
        }

        raw = parse_ocr_payload(payload)

        entity = raw.entity("merchantTaxId")
        assert entity is not None
        assert entity.value == "CHE-111.111.111"

    def test_plain_string_text(self) -> None:
        raw = parse_ocr_payload({"text": "Coop\nTotal 10.00"})

        assert raw.text == "Coop\nTotal 10.00"

    def test_empty_payload(self) -> None:
        raw = parse_ocr_payload({})

        assert raw.entities == {}
        assert raw.text == ""
        assert raw.amounts == []
        assert raw.confidence == 0.0

    def test_malformed_substructures_skipped(self) -> None:
        payload = {
            "merchantName": "not-an-entity",
            "totalAmount": {"data": {"nested": True}},
            "amounts": "nope",
            "confidenceLevel": "high",
            "entities": {"multiTaxLineItems": [None, 3], "productLineItems": {"a": 1}},
        }

        raw = parse_ocr_payload(payload)

        assert raw.entity("merchantName") is None
        assert raw.entity("totalAmount") is None
        assert raw.amounts == []
        assert raw.tax_lines == []
        assert raw.line_items == []
        assert raw.confidence == 0.0

    @pytest.mark.parametrize("payload", [None, [], "error", 42])
    def test_non_object_payload_raises(self, payload: object) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            parse_ocr_payload(payload)

        assert exc_info.value.category == ErrorCategory.SERVICE_ERROR


class TestTaxLineShapes:
    """Tests for the accepted tax-line layouts."""

    def test_flat_shape(self) -> None:
        payload = {
            "entities": {
                "multiTaxLineItems": [{"rate": 8.1, "base": 100, "amount": 8.1, "category": "A"}]
            }
        }

        (line,) = parse_ocr_payload(payload).tax_lines

        assert line.rate == 8.1
        assert line.base == 100
        assert line.category == "A"

    def test_data_nested_shape(self) -> None:
        payload = {"entities": {"multiTaxLineItems": [{"data": {"rate": 2.6, "base": "19.50"}}]}}

        (line,) = parse_ocr_payload(payload).tax_lines

        assert line.rate == 2.6
        assert line.base == "19.50"

    def test_taggun_shape_scales_fractional_rate(self) -> None:
        payload = {
            "entities": {
                "multiTaxLineItems": [
                    {
                        "data": {
                            "taxRate": {"data": 0.081},
                            "grossAmount": {"data": 50.0},
                            "netAmount": {"data": 4.05},
                            "taxCategory": {"data": "B"},
                        }
                    }
                ]
            }
        }

        (line,) = parse_ocr_payload(payload).tax_lines

        assert line.rate == Decimal("8.100")
        assert line.base == 50.0
        assert line.amount == 4.05
        assert line.category == "B"


class TestLineItems:
    """Tests for product line item ingestion."""

    def test_product_line_items(self) -> None:
        payload = {
            "entities": {
                "productLineItems": [
                    {
                        "data": {
                            "name": {"data": "Brot"},
                            "quantity": {"data": 2},
                            "unitPrice": {"data": 1.75},
                            "totalPrice": {"data": 3.5},
                        }
                    },
                    {"data": {}},
                ]
            }
        }

        (item,) = parse_ocr_payload(payload).line_items

        assert item.name == "Brot"
        assert item.quantity == 2
        assert item.unit_price == 1.75
        assert item.total_price == 3.5
