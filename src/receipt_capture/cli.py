"""CLI entry point for receipt-capture."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

import click
from pydantic import ValidationError

from receipt_capture.adapters.function_upload import FunctionUploader
from receipt_capture.adapters.taggun import TaggunOcrService
from receipt_capture.config import get_max_upload_bytes, get_ocr_config, get_upload_config
from receipt_capture.db import open_record_store
from receipt_capture.duplicates import check_exists
from receipt_capture.errors import DuplicateReceiptError, ReceiptCaptureError
from receipt_capture.extraction import extract_receipt
from receipt_capture.ingestion import parse_ocr_payload
from receipt_capture.models import (
    Amounts,
    NormalizedReceipt,
    PaymentMethod,
    SubmissionContext,
    VatLine,
)
from receipt_capture.money import parse_money
from receipt_capture.normalization import build_vat_breakdown, format_vat_details
from receipt_capture.store import LocalFileStore
from receipt_capture.submission import ReceiptSubmission
from receipt_capture.uploads import validate_upload

if TYPE_CHECKING:
    from datetime import datetime

    from receipt_capture.adapters.base import FileUploader

logger = logging.getLogger(__name__)


def _config_error(exc: ValueError) -> click.ClickException:
    return click.ClickException(str(exc))


def _build_uploader() -> FileUploader:
    config = get_upload_config()
    if config.function_url:
        return FunctionUploader(config.function_url, api_key=config.api_key)
    return LocalFileStore(config.store_path)


def _echo_receipt(receipt: NormalizedReceipt) -> None:
    suffix = " (generated)" if receipt.receipt_number_generated else ""
    click.echo(f"Receipt number: {receipt.receipt_number}{suffix}")
    click.echo(f"Merchant:       {receipt.merchant.name or '-'}")
    if receipt.merchant.address:
        click.echo(f"Address:        {receipt.merchant.address}")
    if receipt.merchant.vat_number:
        click.echo(f"VAT number:     {receipt.merchant.vat_number}")
    click.echo(f"Date:           {receipt.transaction_date or '-'}")
    click.echo(f"Total:          {receipt.currency} {receipt.amounts.total or '-'}")
    click.echo(f"Tax:            {receipt.currency} {receipt.amounts.tax or '-'}")
    if receipt.payment_method:
        click.echo(f"Payment:        {receipt.payment_method.value}")
    for item in receipt.line_items:
        click.echo(f"  {item.quantity} x {item.name}  {item.total_price}")
    vat = format_vat_details(receipt.vat_breakdown, receipt.currency)
    if vat:
        click.echo(vat)
    click.echo(f"Confidence:     {receipt.confidence:.0%}")


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Receipt Capture: OCR receipts into bookkeeping records."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--language", default=None, help="OCR language hint.")
@click.option("--near", default=None, help="OCR location hint.")
@click.option("--json", "as_json", is_flag=True, help="Print the receipt as JSON.")
def extract(file: Path, language: str | None, near: str | None, as_json: bool) -> None:
    """Run OCR on FILE and print the normalized receipt."""
    try:
        service = TaggunOcrService(get_ocr_config())
        max_bytes = get_max_upload_bytes()
    except ValueError as exc:
        raise _config_error(exc) from exc

    data = file.read_bytes()
    try:
        validate_upload(data, file.name, max_bytes)
        payload = service.invoke(
            data, filename=file.name, language=language, location_hint=near
        )
        receipt = extract_receipt(parse_ocr_payload(payload))
    except ReceiptCaptureError as exc:
        raise click.ClickException(exc.user_message) from exc

    if as_json:
        click.echo(receipt.model_dump_json(indent=2, exclude={"raw_text"}))
    else:
        _echo_receipt(receipt)


@cli.command("check-number")
@click.argument("number")
@click.option("--company", "company_id", required=True, help="Company id.")
def check_number(number: str, company_id: str) -> None:
    """Check whether NUMBER is already used by a company."""
    try:
        with open_record_store() as store:
            exists = check_exists(store, number, company_id)
    except ValueError as exc:
        raise _config_error(exc) from exc

    if exists:
        raise click.ClickException(DuplicateReceiptError(number).user_message)
    click.echo(f'Receipt number "{number}" is available.')


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--company", "company_id", required=True, help="Company id.")
@click.option("--company-name", default=None, help="Company name for the activity log.")
@click.option("--created-by", required=True, help="Id of the submitting user.")
@click.option(
    "--payment-method",
    type=click.Choice([m.value for m in PaymentMethod]),
    default=None,
    help="Override the inferred payment method.",
)
@click.option("--receipt-number", default=None, help="Override the receipt number.")
@click.option("--merchant", "merchant_name", default=None, help="Override the merchant name.")
@click.option("--total", default=None, help="Override the total amount.")
@click.option("--tax", default=None, help="Override the tax amount.")
@click.option(
    "--date",
    "transaction_date",
    type=click.DateTime(formats=["%Y-%m-%d", "%d.%m.%Y"]),
    default=None,
    help="Override the transaction date.",
)
def submit(
    file: Path,
    company_id: str,
    company_name: str | None,
    created_by: str,
    payment_method: str | None,
    receipt_number: str | None,
    merchant_name: str | None,
    total: str | None,
    tax: str | None,
    transaction_date: datetime | None,
) -> None:
    """OCR FILE, then upload and save it as a receipt."""
    try:
        service = TaggunOcrService(get_ocr_config())
        uploader = _build_uploader()
        upload_config = get_upload_config()
        max_bytes = get_max_upload_bytes()
    except ValueError as exc:
        raise _config_error(exc) from exc

    try:
        with open_record_store() as store:
            flow = ReceiptSubmission(
                store,
                ocr=service,
                uploader=uploader,
                max_upload_attempts=upload_config.max_attempts,
                max_upload_bytes=max_bytes,
            )
            receipt = flow.extract(file.read_bytes(), file.name, company_id=company_id)
            if receipt is None and flow.error is not None:
                click.echo(f"Warning: {flow.error.user_message}", err=True)
                if flow.file is None:
                    raise click.ClickException(flow.error.user_message)
            if flow.duplicate_warning:
                click.echo(f"Warning: {flow.duplicate_warning}", err=True)

            edited = _apply_overrides(
                flow,
                receipt_number=receipt_number,
                merchant_name=merchant_name,
                total=total,
                tax=tax,
                transaction_date=transaction_date,
            )
            context = SubmissionContext(
                company_id=company_id, created_by=created_by, company_name=company_name
            )
            row = flow.submit(
                context,
                receipt=edited,
                payment_method=PaymentMethod(payment_method) if payment_method else None,
            )
    except ValueError as exc:
        raise _config_error(exc) from exc
    except ReceiptCaptureError as exc:
        raise click.ClickException(exc.user_message) from exc

    if row is not None:
        click.echo(f"Saved receipt {row.get('receipt_number')} (id {row.get('id', '-')})")


def _apply_overrides(
    flow: ReceiptSubmission,
    *,
    receipt_number: str | None,
    merchant_name: str | None,
    total: str | None,
    tax: str | None,
    transaction_date: datetime | None,
) -> NormalizedReceipt | None:
    receipt = flow.receipt
    if receipt is None:
        if not receipt_number:
            return None
        receipt = NormalizedReceipt(receipt_number=receipt_number)

    update: dict[str, object] = {}
    if receipt_number:
        update["receipt_number"] = receipt_number
        update["receipt_number_generated"] = False
    if merchant_name:
        update["merchant"] = receipt.merchant.model_copy(update={"name": merchant_name})
    amounts = _parse_amount_overrides(total=total, tax=tax)
    if amounts:
        try:
            edited = Amounts.model_validate({**receipt.amounts.model_dump(), **amounts})
        except ValidationError as exc:
            hint = " / ".join(f"--{name}" for name in amounts)
            raise click.BadParameter("Amounts must be non-negative.", param_hint=hint) from exc
        update["amounts"] = edited
        if not _breakdown_matches(receipt.vat_breakdown, edited):
            update["vat_breakdown"] = build_vat_breakdown([], edited.total, edited.tax)
    if transaction_date is not None:
        update["transaction_date"] = transaction_date.date()
    return receipt.model_copy(update=update) if update else receipt


def _parse_amount_overrides(**options: str | None) -> dict[str, Decimal]:
    amounts: dict[str, Decimal] = {}
    for name, value in options.items():
        if value is None:
            continue
        parsed = parse_money(value)
        if parsed is None:
            raise click.BadParameter(f"{value!r} is not an amount.", param_hint=f"--{name}")
        amounts[name] = parsed
    return amounts


def _breakdown_matches(lines: list[VatLine], amounts: Amounts) -> bool:
    """True when existing VAT lines still add up to the edited tax and total."""
    if not lines:
        return False
    vat = sum((line.vat_amount for line in lines), Decimal(0))
    gross = sum((line.total for line in lines), Decimal(0))
    return vat == amounts.tax and gross == amounts.total
