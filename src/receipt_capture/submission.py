"""Receipt submission flow: extraction, validation, upload and persistence.

One :class:`ReceiptSubmission` owns one in-progress receipt form. Its
``state`` moves through :class:`FlowState`; results of long-running calls
are tagged with the generation current at dispatch and dropped if the
form was reset in the meantime.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any

from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_exponential

from receipt_capture.assembly import assemble_record
from receipt_capture.config import DEFAULT_MAX_UPLOAD_BYTES
from receipt_capture.duplicates import RECEIPTS_TABLE, check_exists
from receipt_capture.errors import (
    ConstraintError,
    DuplicateReceiptError,
    ErrorCategory,
    ExtractionError,
    GlobalDuplicateReceiptError,
    ReceiptCaptureError,
    StoreError,
    UploadError,
    ValidationError,
)
from receipt_capture.extraction import extract_receipt
from receipt_capture.ingestion import parse_ocr_payload
from receipt_capture.uploads import validate_upload

if TYPE_CHECKING:
    import random
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from receipt_capture.adapters.base import FileUploader, OcrService, RecordStore
    from receipt_capture.models import (
        NormalizedReceipt,
        PaymentMethod,
        PersistedReceipt,
        StoredFile,
        SubmissionContext,
    )

logger = logging.getLogger(__name__)

ACTIVITY_LOGS_TABLE = "activity_logs"
CREATE_RECEIPT_ACTIVITY = "CREATE_RECEIPT"
DEFAULT_UPLOAD_ATTEMPTS = 3


class FlowState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    SUBMITTING = "submitting"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.IDLE: frozenset({FlowState.EXTRACTING, FlowState.VALIDATING}),
    FlowState.EXTRACTING: frozenset({FlowState.IDLE, FlowState.ERROR}),
    FlowState.VALIDATING: frozenset(
        {FlowState.UPLOADING, FlowState.SUBMITTING, FlowState.ERROR}
    ),
    FlowState.UPLOADING: frozenset({FlowState.SUBMITTING, FlowState.ERROR}),
    FlowState.SUBMITTING: frozenset({FlowState.DONE, FlowState.ERROR}),
    FlowState.DONE: frozenset(),
    FlowState.ERROR: frozenset({FlowState.EXTRACTING, FlowState.VALIDATING}),
}


def _log_upload_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Upload attempt %d failed (%s), retrying in %.0fs",
        retry_state.attempt_number,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def upload_with_retry(
    uploader: FileUploader,
    data: bytes,
    metadata: Mapping[str, Any],
    *,
    max_attempts: int = DEFAULT_UPLOAD_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> StoredFile:
    """Upload ``data``, retrying with 2s, 4s, ... backoff between attempts.

    Raises:
        UploadError: once ``max_attempts`` attempts have failed.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=2),
        sleep=sleep,
        before_sleep=_log_upload_retry,
        reraise=True,
    )
    try:
        return retrying(uploader.upload, data, metadata)
    except Exception as exc:
        logger.error("Upload failed after %d attempts: %s", max_attempts, exc)
        raise UploadError(max_attempts) from exc


class ReceiptSubmission:
    """State machine for a single receipt form."""

    def __init__(
        self,
        store: RecordStore,
        *,
        ocr: OcrService | None = None,
        uploader: FileUploader | None = None,
        max_upload_attempts: int = DEFAULT_UPLOAD_ATTEMPTS,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.ocr = ocr
        self.uploader = uploader
        self.max_upload_attempts = max_upload_attempts
        self.max_upload_bytes = max_upload_bytes
        self.sleep = sleep
        self.now = now
        self.rng = rng

        self.state = FlowState.IDLE
        self.generation = 0
        self.receipt: NormalizedReceipt | None = None
        self.file: tuple[bytes, str] | None = None
        self.error: ReceiptCaptureError | None = None
        self.duplicate_warning: str | None = None

    # --- State handling ------------------------------------------------------

    def _transition(self, target: FlowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            msg = f"Illegal transition {self.state.value} -> {target.value}"
            raise RuntimeError(msg)
        logger.debug("Submission state %s -> %s", self.state.value, target.value)
        self.state = target

    def _fail(self, error: ReceiptCaptureError) -> None:
        self.error = error
        self._transition(FlowState.ERROR)

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def reset(self) -> None:
        """Clear the form. In-flight results from before the reset are ignored."""
        self.generation += 1
        self.state = FlowState.IDLE
        self.receipt = None
        self.file = None
        self.error = None
        self.duplicate_warning = None

    # --- Extraction ----------------------------------------------------------

    def begin_extraction(self) -> int:
        """Enter EXTRACTING and return the generation token for this request."""
        self._transition(FlowState.EXTRACTING)
        self.error = None
        return self.generation

    def apply_extraction(self, generation: int, receipt: NormalizedReceipt) -> bool:
        """Populate the form from an OCR result unless the form moved on."""
        if not self.is_current(generation):
            logger.info(
                "Discarding stale extraction (generation %d, current %d)",
                generation,
                self.generation,
            )
            return False
        self.receipt = receipt
        self._transition(FlowState.IDLE)
        return True

    def fail_extraction(self, generation: int, error: ReceiptCaptureError) -> bool:
        if not self.is_current(generation):
            return False
        self.receipt = None
        self._fail(error)
        return True

    def extract(
        self,
        data: bytes,
        filename: str,
        *,
        language: str | None = None,
        location_hint: str | None = None,
        company_id: str | None = None,
    ) -> NormalizedReceipt | None:
        """Run OCR on a receipt file and populate the form.

        Extraction failures are not fatal: the error is recorded on the
        submission, the fields stay empty for manual entry and ``None`` is
        returned. When ``company_id`` is given, a duplicate receipt number
        sets ``duplicate_warning`` without blocking.
        """
        if self.ocr is None:
            msg = "No OCR service configured"
            raise RuntimeError(msg)

        generation = self.begin_extraction()
        self.file = None
        try:
            validate_upload(data, filename, self.max_upload_bytes)
            self.file = (data, filename)
            payload = self.ocr.invoke(
                data, filename=filename, language=language, location_hint=location_hint
            )
            raw = parse_ocr_payload(payload)
            receipt = extract_receipt(
                raw, now=self.now() if self.now else None, rng=self.rng
            )
        except ExtractionError as exc:
            logger.warning("Extraction failed for %s: %s", filename, exc.category.value)
            self.fail_extraction(generation, exc)
            return None
        except Exception as exc:
            logger.exception("Unexpected error extracting %s", filename)
            error = ExtractionError(ErrorCategory.SERVICE_ERROR)
            error.__cause__ = exc
            self.fail_extraction(generation, error)
            return None

        if not self.apply_extraction(generation, receipt):
            return None

        logger.info(
            "Extracted receipt %s (confidence %.2f)",
            receipt.receipt_number,
            receipt.confidence,
        )
        self.duplicate_warning = None
        if company_id and not receipt.receipt_number_generated:
            if self.check_receipt_number(receipt.receipt_number, company_id):
                self.duplicate_warning = DuplicateReceiptError(
                    receipt.receipt_number
                ).user_message
        return receipt

    def attach(self, data: bytes, filename: str) -> None:
        """Attach a receipt file without running OCR."""
        validate_upload(data, filename, self.max_upload_bytes)
        self.file = (data, filename)

    def check_receipt_number(self, receipt_number: str | None, company_id: str | None) -> bool:
        """Advisory per-company duplicate check."""
        return check_exists(self.store, receipt_number, company_id)

    # --- Submission ----------------------------------------------------------

    def submit(
        self,
        context: SubmissionContext,
        *,
        receipt: NormalizedReceipt | None = None,
        payment_method: PaymentMethod | None = None,
    ) -> dict[str, Any] | None:
        """Validate, upload and persist the receipt.

        ``receipt`` overrides the extracted receipt with the user's edited
        copy. Returns the inserted row, or ``None`` if the form was reset
        while the upload was in flight.

        Raises:
            ValidationError, DuplicateReceiptError, UploadError,
            GlobalDuplicateReceiptError, StoreError
        """
        if self.file is not None and self.uploader is None:
            msg = "No file uploader configured"
            raise RuntimeError(msg)

        receipt = receipt or self.receipt
        generation = self.generation
        self._transition(FlowState.VALIDATING)
        self.error = None
        try:
            record = self._validate(receipt, context, payment_method)

            if self.file is not None:
                self._transition(FlowState.UPLOADING)
                stored = self._upload(record, context)
                if not self.is_current(generation):
                    logger.info("Form reset during upload, not saving %s", record.receipt_number)
                    return None
                record = record.model_copy(update={"receipt_image_path": stored.sharing_link})

            self._transition(FlowState.SUBMITTING)
            row = self._insert(record)
        except ReceiptCaptureError as exc:
            if self.is_current(generation):
                self._fail(exc)
            raise

        self._log_activity(record, context)
        self._transition(FlowState.DONE)
        logger.info("Receipt %s saved for company %s", record.receipt_number, record.company_id)
        return row

    def _validate(
        self,
        receipt: NormalizedReceipt | None,
        context: SubmissionContext,
        payment_method: PaymentMethod | None,
    ) -> PersistedReceipt:
        if receipt is None:
            raise ValidationError("receipt_number")
        record = assemble_record(receipt, context, payment_method=payment_method)
        if check_exists(self.store, record.receipt_number, record.company_id):
            raise DuplicateReceiptError(record.receipt_number)
        return record

    def _upload(self, record: PersistedReceipt, context: SubmissionContext) -> StoredFile:
        data, filename = self.file  # type: ignore[misc]
        metadata = {
            "company_id": record.company_id,
            "uploaded_by": context.created_by,
            "filename": filename,
            "receipt_number": record.receipt_number,
            "merchant_name": record.merchant.name,
            "total_amount": str(record.amounts.total),
            "transaction_date": record.transaction_date.isoformat(),
        }
        return upload_with_retry(
            self.uploader,  # type: ignore[arg-type]
            data,
            metadata,
            max_attempts=self.max_upload_attempts,
            sleep=self.sleep,
        )

    def _insert(self, record: PersistedReceipt) -> dict[str, Any]:
        try:
            return self.store.insert(RECEIPTS_TABLE, record.to_row())
        except ConstraintError as exc:
            logger.warning("Receipt insert rejected by constraint %s", exc.constraint)
            raise _constraint_error(exc, record.receipt_number) from exc
        except ReceiptCaptureError:
            raise
        except Exception as exc:
            logger.error("Receipt insert failed: %s", exc)
            raise StoreError() from exc

    def _log_activity(self, record: PersistedReceipt, context: SubmissionContext) -> None:
        company = context.company_name or record.company_id
        entry = {
            "user_id": context.created_by,
            "activity_type": CREATE_RECEIPT_ACTIVITY,
            "description": (
                f'Receipt "{record.receipt_number}" was created for company '
                f'"{company}" by {context.created_by}'
            ),
            "company_id": record.company_id,
            "metadata": {
                "created_by": {"id": context.created_by},
                "company": {"id": record.company_id, "name": context.company_name},
            },
            "new_value": record.to_row(),
        }
        try:
            self.store.insert(ACTIVITY_LOGS_TABLE, entry)
        except Exception:
            logger.warning(
                "Could not log activity for receipt %s", record.receipt_number, exc_info=True
            )


def _constraint_error(exc: ConstraintError, receipt_number: str) -> ReceiptCaptureError:
    """Map a unique violation on ``receipts`` to the matching error."""
    name = exc.constraint or ""
    if "receipt_number" not in name:
        return StoreError()
    if "company" in name:
        return DuplicateReceiptError(receipt_number)
    return GlobalDuplicateReceiptError(receipt_number)
