# ruff: noqa: I001
from __future__ import annotations

import csv
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from spendsync.axio_import import import_rows, load_axio_csv
from spendsync.errors import AuthorizationError, BatchValidationError
from spendsync.models import StoreResult, StoreStatus
from spendsync.store import SqlTransactionStore

from tests.helpers.db import (
    bootstrap_sqlite_db,
    count_transactions,
    fetch_transactions,
    seed_custom_category,
    seed_profile,
    seed_system_categories,
)

API_KEY = "key-bob"
USER_ID = "00000000-0000-0000-0000-000000000b0b"

HEADER = "Date,Time,Place,Amount,DR/CR,Account,Expense,Income,Category,Tags,Note\n"


def _row(**overrides: Any) -> dict[str, Any]:
    row = {
        "date": "2024-03-05",
        "time": "07:45 PM",
        "place": " Swiggy ",
        "amount": "1,234.50",
        "direction": "DR",
        "account": "HDFC credit 5487",
        "expense": "Yes",
        "income": "'-",
        "category": "FOOD & DRINKS",
        "tags": "dinner",
        "note": "team",
    }
    row.update(overrides)
    return row


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "axio.sqlite")
    seed_profile(database_url=url, api_key=API_KEY, user_id=USER_ID)
    return url


@pytest.fixture()
def categories(db_url: str) -> dict[str, str]:
    return seed_system_categories(database_url=db_url)


def test_imports_row_with_all_fields(db_url: str, categories: dict[str, str]) -> None:
    result = import_rows(API_KEY, [_row()], store=SqlTransactionStore(db_url))

    assert (result.inserted, result.skipped, result.errors, result.total) == (1, 0, 0, 1)
    assert "errorDetails" not in result.to_response()

    (tx,) = fetch_transactions(db_url)
    assert tx.amount == Decimal("1234.50")
    assert tx.direction == "debit"
    assert (tx.payment_method, tx.account_last4, tx.bank_name) == ("card", "5487", "HDFC Bank")
    assert tx.category_id == categories["food"]
    assert (tx.merchant, tx.merchant_normalized) == ("Swiggy", "Swiggy")
    assert tx.notes == "dinner | team"
    assert (tx.is_expense, tx.is_income) == (True, False)
    assert tx.source == "axio"
    assert tx.sms_id is None and tx.raw_sms is None
    assert (tx.original_amount, tx.original_currency) == (None, None)
    # 07:45 PM IST; SQLite keeps the wall-clock value.
    assert (tx.transacted_at.hour, tx.transacted_at.minute) == (19, 45)


def test_flags_are_taken_verbatim_without_defaults(db_url: str, categories) -> None:
    rows = [
        _row(direction="DR", expense="No", income="'-", category="Transfer"),
        _row(direction="CR", expense="'-", income="No", category="Salary", account="Kotak 3760"),
        _row(direction="CR", expense="'-", income="Yes", category="Salary"),
    ]
    result = import_rows(API_KEY, rows, store=SqlTransactionStore(db_url))
    assert result.inserted == 3

    flags = [(t.direction, t.is_expense, t.is_income) for t in fetch_transactions(db_url)]
    assert sorted(flags) == sorted(
        [("debit", False, False), ("credit", False, False), ("credit", False, True)]
    )


def test_zero_and_unparseable_amounts_are_skipped(db_url: str, categories) -> None:
    rows = [_row(amount="0"), _row(amount=""), _row(amount="n/a"), _row(amount="'-13.0")]
    result = import_rows(API_KEY, rows, store=SqlTransactionStore(db_url))

    assert (result.inserted, result.skipped, result.errors, result.total) == (1, 3, 0, 4)
    (tx,) = fetch_transactions(db_url)
    assert tx.amount == Decimal("13.00")


def test_bad_date_is_a_row_error_and_import_continues(db_url: str, categories) -> None:
    rows = [_row(date="05/03/2024"), _row()]
    result = import_rows(API_KEY, rows, store=SqlTransactionStore(db_url))

    assert (result.inserted, result.errors) == (1, 1)
    assert result.error_details[0].startswith("Row 1: ")
    assert result.to_response()["errorDetails"] == result.error_details


def test_store_errors_are_counted_and_capped(db_url: str, categories) -> None:
    class RejectingStore(SqlTransactionStore):
        def upsert_transaction(self, record):
            return StoreResult(StoreStatus.ERROR, "value too long")

    rows = [_row() for _ in range(12)]
    result = import_rows(API_KEY, rows, store=RejectingStore(db_url))

    assert (result.inserted, result.errors, result.total) == (0, 12, 12)
    assert len(result.error_details) == 10
    assert result.error_details[0] == "Row 1: value too long"
    assert result.error_details[-1] == "Row 10: value too long"
    assert count_transactions(db_url) == 0


def test_oversized_amount_fails_only_its_row(db_url: str, categories) -> None:
    rows = [_row(), _row(amount="10000000000000000000000000000"), _row()]
    result = import_rows(API_KEY, rows, store=SqlTransactionStore(db_url))

    assert (result.inserted, result.skipped, result.errors, result.total) == (2, 0, 1, 3)
    assert result.error_details[0].startswith("Row 2: ")
    assert count_transactions(db_url) == 2


def test_store_exception_fails_only_its_row(db_url: str, categories) -> None:
    class CrashingStore(SqlTransactionStore):
        def upsert_transaction(self, record):
            if record.merchant == "Boom":
                raise RuntimeError("driver crashed")
            return super().upsert_transaction(record)

    rows = [_row(place="Boom"), _row()]
    result = import_rows(API_KEY, rows, store=CrashingStore(db_url))

    assert (result.inserted, result.errors) == (1, 1)
    assert result.error_details == ["Row 1: driver crashed"]


def test_custom_category_resolves(db_url: str, categories) -> None:
    custom = seed_custom_category(database_url=db_url, user_id=USER_ID, slug="cat", name="Cat")
    import_rows(API_KEY, [_row(category="Cat")], store=SqlTransactionStore(db_url))
    assert fetch_transactions(db_url)[0].category_id == custom


def test_unknown_credential(db_url: str) -> None:
    with pytest.raises(AuthorizationError):
        import_rows("nope", [_row()], store=SqlTransactionStore(db_url))
    assert count_transactions(db_url) == 0


def test_malformed_rows_are_rejected(db_url: str) -> None:
    bad = _row()
    del bad["amount"]
    with pytest.raises(BatchValidationError):
        import_rows(API_KEY, [bad], store=SqlTransactionStore(db_url))
    with pytest.raises(BatchValidationError):
        import_rows(API_KEY, [_row(amount=12.5)], store=SqlTransactionStore(db_url))


# ---- CSV loading -------------------------------------------------------------


def test_load_axio_csv_maps_headers_case_insensitively(tmp_path: Path) -> None:
    path = tmp_path / "export.csv"
    path.write_text(
        "\ufeffDATE,time,Place,Amount,dr/cr,Account,Expense,Income,Category,Extra\n"
        '2024-03-05,07:45 PM,Swiggy,"1,234.50",DR,HDFC credit 5487,Yes,\'-,FOOD & DRINKS,x\n',
        encoding="utf-8",
    )
    (row,) = load_axio_csv(path)
    assert row == {
        "date": "2024-03-05",
        "time": "07:45 PM",
        "place": "Swiggy",
        "amount": "1,234.50",
        "direction": "DR",
        "account": "HDFC credit 5487",
        "expense": "Yes",
        "income": "'-",
        "category": "FOOD & DRINKS",
    }


def test_load_axio_csv_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("Date,Time,Place\n2024-01-01,10:00 AM,Shop\n", encoding="utf-8")
    with pytest.raises(csv.Error, match="amount"):
        load_axio_csv(path)


def test_csv_to_database(tmp_path: Path, db_url: str, categories) -> None:
    path = tmp_path / "export.csv"
    path.write_text(
        HEADER
        + "2024-03-05,09:10 AM,Uber,250,DR,Kotak debit 8641,Yes,'-,Transport,,\n"
        + "2024-03-06,10:00 AM,Employer,\"50,000\",CR,Kotak  3760,'-,Yes,Salary,,\n",
        encoding="utf-8",
    )
    result = import_rows(API_KEY, load_axio_csv(path), store=SqlTransactionStore(db_url))

    assert (result.inserted, result.total) == (2, 2)
    by_merchant = {t.merchant: t for t in fetch_transactions(db_url)}
    assert by_merchant["Uber"].category_id == categories["transport"]
    assert by_merchant["Uber"].notes is None
    assert by_merchant["Employer"].payment_method == "upi"
    assert by_merchant["Employer"].amount == Decimal("50000.00")
