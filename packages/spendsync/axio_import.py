"""Bulk import of Axio expense-tracker exports.

No oracle is involved: direction, category and the expense/income flags come
straight from the export, and every field is parsed with the pure helpers in
:mod:`spendsync.normalizers`. Rows are inserted one by one; a failed row is
counted and reported but never stops the rest of the import.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .categories import category_id_for_slug
from .errors import AuthorizationError, BatchValidationError
from .logging_setup import get_logger, log_event
from .models import AxioRow, Category, ImportRequest, ImportResult, TransactionRecord
from .normalizers import (
    build_notes,
    category_slug,
    compose_timestamp,
    is_affirmative,
    parse_account,
    parse_amount,
    parse_direction,
)
from .store import TransactionStore

MAX_ERROR_DETAILS = 10

# Export header (case-insensitive) -> AxioRow field.
CSV_COLUMNS: dict[str, str] = {
    "date": "date",
    "time": "time",
    "place": "place",
    "amount": "amount",
    "dr/cr": "direction",
    "account": "account",
    "expense": "expense",
    "income": "income",
    "category": "category",
    "tags": "tags",
    "note": "note",
}
OPTIONAL_COLUMNS = frozenset({"tags", "note"})

_logger = get_logger("spendsync.axio_import")


def load_axio_csv(path: str | Path) -> list[dict[str, str]]:
    """Read an Axio CSV export into row mappings keyed by ``AxioRow`` fields.

    Unknown columns are ignored. Raises ``csv.Error`` when a required column
    is missing.
    """

    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        header = {(h or "").strip().lower(): h for h in (reader.fieldnames or [])}
        missing = [c for c in CSV_COLUMNS if c not in header and c not in OPTIONAL_COLUMNS]
        if missing:
            raise csv.Error(f"Axio export is missing columns: {', '.join(missing)}")

        rows: list[dict[str, str]] = []
        for raw in reader:
            row: dict[str, str] = {}
            for col, field in CSV_COLUMNS.items():
                src = header.get(col)
                if src is None:
                    continue
                row[field] = raw.get(src) or ""
            rows.append(row)
    return rows


def _build_record(
    user_id: str, row: AxioRow, amount: float, categories: Sequence[Category]
) -> TransactionRecord:
    info = parse_account(row.account)
    place = row.place.strip() or None
    return TransactionRecord(
        user_id=user_id,
        amount=amount,
        direction=parse_direction(row.direction),
        transacted_at=compose_timestamp(row.date, row.time),
        source="axio",
        is_expense=is_affirmative(row.expense),
        is_income=is_affirmative(row.income),
        merchant=place,
        merchant_normalized=place,
        payment_method=info.payment_method,
        account_last4=info.account_last4,
        bank_name=info.bank_name,
        category_id=category_id_for_slug(category_slug(row.category), categories),
        notes=build_notes(row.tags, row.note),
    )


def import_rows(
    credential: str,
    rows: Sequence[AxioRow | Mapping[str, Any]],
    *,
    store: TransactionStore,
) -> ImportResult:
    """Import Axio rows for the caller behind ``credential``.

    Rows with a zero or unparseable amount are skipped. Failed rows are
    reported as ``"Row N: <message>"`` (1-based, first ten kept).

    Raises
    ------
    BatchValidationError
        The request is malformed.
    AuthorizationError
        The credential does not resolve to a user.
    """

    try:
        request = ImportRequest.model_validate({"api_key": credential, "rows": list(rows)})
    except ValidationError as e:
        details = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors(include_url=False)
        ]
        raise BatchValidationError("Invalid request body", details) from e

    identity = store.get_identity(request.api_key)
    if identity is None:
        raise AuthorizationError("Invalid API key")
    user_id = identity.user_id
    log_event(_logger, "axio_import:start", user=user_id, rows=len(request.rows))

    categories = store.get_categories(user_id)
    if not categories:
        log_event(_logger, "axio_import:empty_vocabulary", level=logging.WARNING, user=user_id)

    inserted = skipped = errors = 0
    error_details: list[str] = []

    def _fail(row_no: int, message: str) -> None:
        nonlocal errors
        errors += 1
        if len(error_details) < MAX_ERROR_DETAILS:
            error_details.append(f"Row {row_no}: {message}")

    for row_no, row in enumerate(request.rows, start=1):
        amount = parse_amount(row.amount)
        if amount <= 0:
            skipped += 1
            continue
        try:
            record = _build_record(user_id, row, amount, categories)
        except ValueError as e:
            _fail(row_no, str(e))
            continue

        try:
            result = store.upsert_transaction(record)
        except Exception as e:  # noqa: BLE001 - one row never aborts the import
            log_event(
                _logger, "axio_import:row_failed", level=logging.ERROR, exc_info=True, row=row_no
            )
            _fail(row_no, str(e) or e.__class__.__name__)
            continue
        if not result.succeeded:
            _fail(row_no, result.error or "Insert failed")
        else:
            inserted += 1

    log_event(
        _logger,
        "axio_import:done",
        user=user_id,
        inserted=inserted,
        skipped=skipped,
        errors=errors,
    )
    return ImportResult(
        inserted=inserted,
        skipped=skipped,
        errors=errors,
        total=len(request.rows),
        error_details=error_details,
    )


__all__ = ["CSV_COLUMNS", "MAX_ERROR_DETAILS", "import_rows", "load_axio_csv"]
