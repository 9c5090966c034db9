# ruff: noqa: I001
from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from spendsync.models import RunSummary, StoreStatus, TransactionRecord
from spendsync.runs import RunSummaryWriter, compute_run_status
from spendsync.store import SqlTransactionStore

from tests.helpers.db import (
    bootstrap_sqlite_db,
    count_transactions,
    fetch_sync_runs,
    seed_custom_category,
    seed_profile,
    seed_system_categories,
)

USER_A = "aaaaaaaa-0000-0000-0000-000000000001"
USER_B = "bbbbbbbb-0000-0000-0000-000000000002"
WHEN = datetime(2025, 2, 1, 9, 30, tzinfo=UTC)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    url = bootstrap_sqlite_db(tmp_path / "store.sqlite")
    seed_profile(database_url=url, api_key="key-a", user_id=USER_A)
    seed_profile(database_url=url, api_key="key-b", user_id=USER_B)
    seed_system_categories(database_url=url, categories=[("food", "Food"), ("other", "Other")])
    seed_custom_category(database_url=url, user_id=USER_A, slug="cat", name="Cat")
    seed_custom_category(database_url=url, user_id=USER_B, slug="golf", name="Golf")
    return url


def _record(user_id: str = USER_A, sms_id: int | None = 1, **kw) -> TransactionRecord:
    fields = {
        "user_id": user_id,
        "amount": 100.0,
        "direction": "debit",
        "transacted_at": WHEN,
        "source": "sms",
        "is_expense": True,
        "is_income": False,
        "sms_id": sms_id,
    }
    fields.update(kw)
    return TransactionRecord(**fields)


def test_identity_lookup(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    identity = store.get_identity("key-a")
    assert identity is not None and identity.user_id == USER_A
    assert store.get_identity("missing") is None
    assert store.get_identity("") is None


def test_vocabulary_is_system_plus_own_custom(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    assert [c.slug for c in store.get_categories(USER_A)] == ["food", "other", "cat"]
    assert [c.slug for c in store.get_categories(USER_B)] == ["food", "other", "golf"]
    assert [c.slug for c in store.get_categories(None)] == ["food", "other"]


def test_insert_then_conflict_on_same_user_and_sms_id(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    assert store.upsert_transaction(_record()).status is StoreStatus.OK
    second = store.upsert_transaction(_record(amount=5.0))
    assert second.status is StoreStatus.CONFLICT
    assert second.succeeded
    assert count_transactions(db_url) == 1


def test_same_sms_id_for_another_user_is_not_a_conflict(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    assert store.upsert_transaction(_record(USER_A, 7)).status is StoreStatus.OK
    assert store.upsert_transaction(_record(USER_B, 7)).status is StoreStatus.OK
    assert count_transactions(db_url, sms_id=7) == 2


def test_rows_without_sms_id_are_not_deduplicated(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    for _ in range(2):
        assert store.upsert_transaction(_record(sms_id=None, source="axio")).status is StoreStatus.OK
    assert count_transactions(db_url, source="axio") == 2


def test_other_integrity_failures_are_errors(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    result = store.upsert_transaction(_record(sms_id=None, category_id="no-such-category"))
    assert result.status is StoreStatus.ERROR
    assert not result.succeeded
    assert result.error
    assert count_transactions(db_url) == 0


def test_vocabulary_query_failure_returns_empty(tmp_path: Path) -> None:
    store = SqlTransactionStore(f"sqlite+pysqlite:///{tmp_path / 'no_tables.sqlite'}")
    assert store.get_categories(USER_A) == []


def test_amount_beyond_decimal_precision_is_an_error(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    result = store.upsert_transaction(_record(sms_id=3, amount=1e28))
    assert result.status is StoreStatus.ERROR
    assert not result.succeeded
    assert "InvalidOperation" in (result.error or "")
    assert count_transactions(db_url) == 0


def test_record_invariants() -> None:
    with pytest.raises(ValueError):
        _record(amount=0.0)
    with pytest.raises(ValueError):
        _record(original_amount=5.0)
    with pytest.raises(ValueError):
        _record(is_income=True)


@pytest.mark.parametrize(
    "total,inserted,errors,expected",
    [
        (3, 2, 0, "success"),
        (3, 0, 0, "success"),
        (2, 1, 1, "partial"),
        (2, 0, 2, "failed"),
        (0, 0, 0, "no_messages"),
    ],
)
def test_compute_run_status(total: int, inserted: int, errors: int, expected: str) -> None:
    assert compute_run_status(total=total, inserted=inserted, errors=errors) == expected


def test_run_summary_round_trip(db_url: str) -> None:
    store = SqlTransactionStore(db_url)
    summary = RunSummary(
        id="11111111-2222-3333-4444-555555555555",
        user_id=USER_A,
        source="sms_sync",
        status="partial",
        started_at=WHEN,
        completed_at=WHEN,
        duration_ms=12,
        total_messages=2,
        inserted=1,
        skipped=0,
        errors=1,
        messages=[{"id": 1, "sender": "X", "body": "b", "timestamp": None}],
        details=[{"sms_id": 1, "status": "error", "reason": "boom"}],
        rowid_from=1,
        rowid_to=1,
    )
    with RunSummaryWriter(store.insert_run_summary) as writer:
        assert writer.submit(summary).result(timeout=10) is True

    (run,) = fetch_sync_runs(db_url)
    assert (run.id, run.status, run.errors) == (summary.id, "partial", 1)
    assert run.details == [{"sms_id": 1, "status": "error", "reason": "boom"}]


def test_writer_rejects_submissions_after_close(db_url: str) -> None:
    writer = RunSummaryWriter(lambda s: None)
    writer.close()
    with pytest.raises(RuntimeError):
        writer.submit(None)  # type: ignore[arg-type]
