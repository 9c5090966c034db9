# ruff: noqa: I001
"""Persistence for ``spendsync`` on the shared ``db`` library.

Each operation runs in its own short transaction (``session_scope``); there
is no batch-wide transaction, so one message's failure never rolls back
another's insert.

The ``(user_id, sms_id)`` unique index is the only guard against double
inserts. A violation of that key is reported as ``StoreStatus.CONFLICT``
(the row already exists, which callers treat as success); every other
database failure is ``StoreStatus.ERROR`` carrying the driver message.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.client import session_scope
from db.models.finance import Category as CategoryRow
from db.models.finance import Profile, SyncRun, Transaction
from .logging_setup import get_logger, short_id
from .models import Category, Identity, RunSummary, StoreResult, StoreStatus, TransactionRecord

_logger = get_logger("spendsync.store")


class TransactionStore(Protocol):
    def get_identity(self, credential: str) -> Identity | None: ...

    def get_categories(self, user_id: str | None) -> list[Category]: ...

    def upsert_transaction(self, record: TransactionRecord) -> StoreResult: ...

    def insert_run_summary(self, summary: RunSummary) -> str: ...


def _to_decimal_2(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class SqlTransactionStore:
    """SQLAlchemy-backed store.

    Parameters
    ----------
    database_url:
        Optional URL; when omitted ``DATABASE_URL`` is read on first use.
    """

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    # ---- identity and vocabulary ---------------------------------------------

    def get_identity(self, credential: str) -> Identity | None:
        if not credential:
            return None
        with session_scope(database_url=self.database_url) as s:
            user_id = s.scalar(select(Profile.user_id).where(Profile.api_key == credential))
        return Identity(user_id=user_id) if user_id else None

    def get_categories(self, user_id: str | None) -> list[Category]:
        """System categories plus the user's custom ones, in display order.

        With no user only the system categories are returned.
        """

        owner = CategoryRow.is_system.is_(True)
        if user_id:
            owner = or_(owner, CategoryRow.user_id == user_id)
        stmt = (
            select(CategoryRow.id, CategoryRow.slug, CategoryRow.name)
            .where(owner)
            .order_by(
                CategoryRow.is_system.desc(),
                CategoryRow.sort_order.nulls_last(),
                CategoryRow.name,
            )
        )
        try:
            with session_scope(database_url=self.database_url) as s:
                rows = s.execute(stmt).all()
        except SQLAlchemyError as e:
            _logger.warning(
                "store:categories_failed user=%s error=%s",
                short_id(user_id),
                _driver_message(e),
                exc_info=True,
            )
            return []
        return [Category(id=r.id, slug=r.slug, name=r.name) for r in rows]

    # ---- transactions ----------------------------------------------------------

    def _exists(self, user_id: str, sms_id: int) -> bool:
        with session_scope(database_url=self.database_url) as s:
            found = s.scalar(
                select(Transaction.id).where(
                    Transaction.user_id == user_id, Transaction.sms_id == sms_id
                )
            )
        return found is not None

    def _build_row(self, record: TransactionRecord) -> Transaction:
        return Transaction(
            user_id=record.user_id,
            amount=_to_decimal_2(record.amount),
            direction=record.direction,
            transacted_at=record.transacted_at,
            merchant=record.merchant,
            merchant_normalized=record.merchant_normalized,
            payment_method=record.payment_method,
            account_last4=record.account_last4,
            bank_name=record.bank_name,
            reference_id=record.reference_id,
            raw_sms=record.raw_sms,
            sms_id=record.sms_id,
            sms_sender=record.sms_sender,
            source=record.source,
            category_id=record.category_id,
            notes=record.notes,
            original_amount=_to_decimal_2(record.original_amount),
            original_currency=record.original_currency,
            is_expense=record.is_expense,
            is_income=record.is_income,
        )

    def upsert_transaction(self, record: TransactionRecord) -> StoreResult:
        try:
            row = self._build_row(record)
        except (InvalidOperation, ValueError) as e:
            msg = f"invalid amount: {e.__class__.__name__}"
            _logger.warning("store:invalid_row user=%s error=%s", short_id(record.user_id), msg)
            return StoreResult(StoreStatus.ERROR, msg)
        try:
            with session_scope(database_url=self.database_url) as s:
                s.add(row)
                s.flush()
        except IntegrityError as e:
            if record.sms_id is not None and self._exists(record.user_id, record.sms_id):
                _logger.info(
                    "store:conflict user=%s sms_id=%d", short_id(record.user_id), record.sms_id
                )
                return StoreResult(StoreStatus.CONFLICT)
            msg = _driver_message(e)
            _logger.warning("store:rejected user=%s error=%s", short_id(record.user_id), msg)
            return StoreResult(StoreStatus.ERROR, msg)
        except SQLAlchemyError as e:
            msg = _driver_message(e)
            _logger.warning("store:error user=%s error=%s", short_id(record.user_id), msg)
            return StoreResult(StoreStatus.ERROR, msg)
        return StoreResult(StoreStatus.OK)

    # ---- run summaries ---------------------------------------------------------

    def insert_run_summary(self, summary: RunSummary) -> str:
        """Persist one run summary. Raises on database failure."""

        with session_scope(database_url=self.database_url) as s:
            s.add(
                SyncRun(
                    id=summary.id,
                    user_id=summary.user_id,
                    source=summary.source,
                    status=summary.status,
                    started_at=summary.started_at,
                    completed_at=summary.completed_at,
                    duration_ms=summary.duration_ms,
                    total_messages=summary.total_messages,
                    inserted=summary.inserted,
                    skipped=summary.skipped,
                    errors=summary.errors,
                    rowid_from=summary.rowid_from,
                    rowid_to=summary.rowid_to,
                    messages=list(summary.messages),
                    details=list(summary.details),
                )
            )
        return summary.id


__all__ = ["SqlTransactionStore", "TransactionStore"]
