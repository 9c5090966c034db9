from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    false,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _uuid_str() -> str:
    return str(uuid.uuid4())


# ---------------------------
# Identity: profiles
# ---------------------------


class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    # Opaque caller credential; maps 1:1 to the user.
    api_key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    slug: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # System categories are visible to every user; custom ones carry user_id.
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("profiles.user_id"), nullable=True
    )
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(is_system AND user_id IS NULL) OR (NOT is_system AND user_id IS NOT NULL)",
            name="ck_categories_owner",
        ),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.user_id"), nullable=False
    )
    # Always in base currency (INR) after conversion.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    transacted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_normalized: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    account_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String, nullable=True)
    raw_sms: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Unique per source device only; scoped by user_id for deduplication.
    sms_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    sms_sender: Mapped[str | None] = mapped_column(String, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("categories.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    original_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    is_expense: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    is_income: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        # Dedup key for the SMS path. Rows without sms_id (imports) are not
        # constrained.
        Index(
            "uq_transactions_user_sms",
            "user_id",
            "sms_id",
            unique=True,
            postgresql_where=text("sms_id IS NOT NULL"),
            sqlite_where=text("sms_id IS NOT NULL"),
        ),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint("direction in ('credit','debit')", name="ck_transactions_direction"),
        CheckConstraint("source in ('sms','axio','manual')", name="ck_transactions_source"),
        CheckConstraint(
            "(original_amount IS NULL AND original_currency IS NULL) OR "
            "(original_amount IS NOT NULL AND original_currency IS NOT NULL)",
            name="ck_transactions_provenance",
        ),
        CheckConstraint(
            "NOT (is_expense AND is_income)", name="ck_transactions_expense_xor_income"
        ),
    )


# ---------------------------
# Audit: sync_runs
# ---------------------------


class SyncRun(Base):
    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.user_id"), nullable=False
    )
    source: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False)
    inserted: Mapped[int] = mapped_column(Integer, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False)
    errors: Mapped[int] = mapped_column(Integer, nullable=False)
    rowid_from: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    rowid_to: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    # Verbatim input batch and per-message outcomes for audit/replay.
    messages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    details: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('success','partial','failed','no_messages')",
            name="ck_sync_runs_status",
        ),
    )


__all__ = [
    "Base",
    "Category",
    "Profile",
    "SyncRun",
    "Transaction",
]
