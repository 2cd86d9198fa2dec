"""Shared test fixtures."""

from __future__ import annotations

import copy
import random
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from receipt_capture.errors import ConstraintError
from receipt_capture.models import StoredFile, SubmissionContext

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

MIGROS_TEXT = """Migros
Limmatstrasse 152
8005 Zürich
Tel. 044 277 21 11
www.migros.ch
MWST-Nr. CHE-116.228.220 MWST
12.03.2024 14:32
Brot 3.50
Milch 1.95
Total CHF 54.30
Bar 60.00
Rückgeld 5.70
"""

PDF_BYTES = b"%PDF-1.4\n% fake receipt\n"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00fake"


class FakeRecordStore:
    """In-memory ``RecordStore`` with the production unique constraints.

    ``receipts.receipt_number`` is globally unique, like the hosted schema.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.select_calls: list[tuple[str, dict[str, Any]]] = []
        self.insert_calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_selects = False
        self.fail_tables: set[str] = set()

    def select(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        self.select_calls.append((table, dict(filters)))
        if self.fail_selects:
            msg = "connection reset"
            raise ConnectionError(msg)
        return [
            row
            for row in self.tables.get(table, [])
            if all(row.get(key) == value for key, value in filters.items())
        ]

    def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        self.insert_calls.append((table, dict(record)))
        if table in self.fail_tables:
            msg = f"{table} is unavailable"
            raise RuntimeError(msg)
        rows = self.tables.setdefault(table, [])
        if table == "receipts" and any(
            row["receipt_number"] == record["receipt_number"] for row in rows
        ):
            raise ConstraintError("receipts_receipt_number_key")
        row = {"id": len(rows) + 1, **copy.deepcopy(dict(record))}
        rows.append(row)
        return row

    def add_receipt(self, receipt_number: str, company_id: str) -> None:
        self.tables.setdefault("receipts", []).append(
            {"id": 100, "receipt_number": receipt_number, "company_id": company_id}
        )


class FakeOcrService:
    """``OcrService`` returning a canned payload or raising a canned error."""

    def __init__(
        self, payload: Mapping[str, Any] | None = None, error: Exception | None = None
    ) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def invoke(
        self,
        data: bytes,
        *,
        filename: str,
        language: str | None = None,
        location_hint: str | None = None,
    ) -> Mapping[str, Any]:
        self.calls.append(
            {"filename": filename, "language": language, "location_hint": location_hint}
        )
        if self.error is not None:
            raise self.error
        return self.payload or {}


class FlakyUploader:
    """``FileUploader`` failing a fixed number of times before succeeding."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[dict[str, Any]] = []

    def upload(self, data: bytes, metadata: Mapping[str, Any]) -> StoredFile:
        self.calls.append(dict(metadata))
        if len(self.calls) <= self.failures:
            msg = "upload function unavailable"
            raise ConnectionError(msg)
        return StoredFile(
            sharing_link="https://files.example.com/share/abc",
            item_id="item-1",
            document_id="doc-1",
            path="/Receipts/receipt.pdf",
        )


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Provide a temporary directory as the file store root."""
    root = tmp_path / "receipts"
    root.mkdir()
    return root


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 15, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def context(fixed_now: datetime) -> SubmissionContext:
    return SubmissionContext(
        company_id="company-x",
        created_by="admin-1",
        company_name="Acme AG",
        submitted_at=fixed_now,
    )


@pytest.fixture
def taggun_payload() -> dict[str, Any]:
    """Provide a Taggun verbose response for a Migros receipt without a number."""
    return {
        "totalAmount": {"data": 54.3, "confidenceLevel": 0.94, "currencyCode": "CHF"},
        "taxAmount": {"data": 4.3, "confidenceLevel": 0.9},
        "paidAmount": {"data": 60.0, "confidenceLevel": 0.8},
        "date": {"data": "2024-03-12T00:00:00.000Z", "confidenceLevel": 0.9},
        "merchantName": {"data": "Migros", "confidenceLevel": 0.95},
        "merchantAddress": {"data": "Limmatstrasse 152", "confidenceLevel": 0.7},
        "merchantCity": {"data": "Zürich", "confidenceLevel": 0.7},
        "merchantPostalCode": {"data": "8005", "confidenceLevel": 0.7},
        "merchantCountryCode": {"data": "CH", "confidenceLevel": 0.9},
        "confidenceLevel": 0.92,
        "trackingId": "trk-123",
        "text": {"text": MIGROS_TEXT},
        "amounts": [
            {"data": 3.5, "text": "Brot 3.50"},
            {"data": 1.95, "text": "Milch 1.95"},
            {"data": 54.3, "text": "Total CHF 54.30"},
            {"data": 60.0, "text": "Bar 60.00"},
            {"data": 5.7, "text": "Rückgeld 5.70"},
        ],
        "entities": {"multiTaxLineItems": [], "productLineItems": []},
    }


@pytest.fixture
def numbered_payload(taggun_payload: dict[str, Any]) -> dict[str, Any]:
    """The Migros payload with a receipt number entity."""
    payload = copy.deepcopy(taggun_payload)
    payload["entities"]["receiptNumber"] = {"data": "A1", "confidenceLevel": 0.8}
    return payload


@pytest.fixture
def ocr_factory() -> type[FakeOcrService]:
    return FakeOcrService


@pytest.fixture
def uploader_factory() -> type[FlakyUploader]:
    return FlakyUploader


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return JPEG_BYTES
