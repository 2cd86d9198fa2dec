"""External service protocols."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from receipt_capture.models import StoredFile


@runtime_checkable
class OcrService(Protocol):
    """Protocol for OCR vendors returning a JSON receipt description."""

    def invoke(
        self,
        data: bytes,
        *,
        filename: str,
        language: str | None = None,
        location_hint: str | None = None,
    ) -> Mapping[str, Any]: ...


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for the tabular record store.

    ``insert`` raises :class:`receipt_capture.errors.ConstraintError` when a
    unique constraint rejects the row.
    """

    def select(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]: ...

    def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]: ...


@runtime_checkable
class FileUploader(Protocol):
    """Protocol for receipt file storage backends."""

    def upload(self, data: bytes, metadata: Mapping[str, Any]) -> StoredFile: ...
