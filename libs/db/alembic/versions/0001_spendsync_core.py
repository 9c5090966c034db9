# ruff: noqa: I001
"""Ledger core tables and seed system categories.

Revision ID: 0001_spendsync_core
Revises: None
Create Date: 2026-02-14
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_spendsync_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


# System vocabulary (slug, name); mirrors the category guidelines in
# spendsync.prompting.
SYSTEM_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("food", "Food & Drinks"),
    ("junk", "Junk Food"),
    ("groceries", "Groceries"),
    ("transport", "Transport"),
    ("fuel", "Fuel"),
    ("shopping", "Shopping"),
    ("entertainment", "Entertainment"),
    ("bills", "Bills"),
    ("subscriptions", "Subscriptions"),
    ("emi", "EMI"),
    ("health", "Health"),
    ("travel", "Travel"),
    ("trip", "Trip"),
    ("education", "Education"),
    ("salary", "Salary"),
    ("income", "Income"),
    ("credit", "Credit"),
    ("refund", "Refund"),
    ("transfer", "Transfer"),
    ("investment", "Investment"),
    ("bill-payment", "Bill Payment"),
    ("home-spend", "Home Spend"),
    ("gifting", "Gifting"),
    ("celebration", "Celebration"),
    ("lent", "Lent"),
    ("charity", "Charity"),
    ("cat", "Cat"),
    ("misc", "Misc"),
    ("other", "Other"),
    ("unknown", "Unknown"),
)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("api_key", sa.Text(), nullable=False, unique=True),
        sa.Column("email", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id"), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "(is_system AND user_id IS NULL) OR (NOT is_system AND user_id IS NOT NULL)",
            name="ck_categories_owner",
        ),
    )
    # Slugs are case-insensitive keys within one user's visible vocabulary.
    op.create_index(
        "uq_categories_owner_slug",
        "categories",
        [sa.text("coalesce(user_id, '__system__')"), sa.text("lower(slug)")],
        unique=True,
    )

    op.bulk_insert(
        sa.table(
            "categories",
            sa.column("id", sa.String()),
            sa.column("slug", sa.Text()),
            sa.column("name", sa.Text()),
            sa.column("is_system", sa.Boolean()),
            sa.column("sort_order", sa.Integer()),
        ),
        [
            {
                "id": str(uuid.uuid4()),
                "slug": slug,
                "name": name,
                "is_system": True,
                "sort_order": i,
            }
            for i, (slug, name) in enumerate(SYSTEM_CATEGORIES)
        ],
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.Text(), nullable=False),
        sa.Column("transacted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("merchant", sa.Text(), nullable=True),
        sa.Column("merchant_normalized", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.Text(), nullable=True),
        sa.Column("account_last4", sa.String(4), nullable=True),
        sa.Column("bank_name", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.Text(), nullable=True),
        sa.Column("raw_sms", sa.Text(), nullable=True),
        sa.Column("sms_id", sa.BigInteger(), nullable=True),
        sa.Column("sms_sender", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("original_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("original_currency", sa.String(3), nullable=True),
        sa.Column("is_expense", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_income", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "direction in ('credit','debit')", name="ck_transactions_direction"
        ),
        sa.CheckConstraint(
            "source in ('sms','axio','manual')", name="ck_transactions_source"
        ),
        sa.CheckConstraint(
            "(original_amount IS NULL AND original_currency IS NULL) OR "
            "(original_amount IS NOT NULL AND original_currency IS NOT NULL)",
            name="ck_transactions_provenance",
        ),
        sa.CheckConstraint(
            "NOT (is_expense AND is_income)", name="ck_transactions_expense_xor_income"
        ),
    )
    op.create_index(
        "uq_transactions_user_sms",
        "transactions",
        ["user_id", "sms_id"],
        unique=True,
        postgresql_where=sa.text("sms_id IS NOT NULL"),
    )
    op.create_index(
        "ix_transactions_user_transacted_at",
        "transactions",
        ["user_id", "transacted_at"],
        unique=False,
    )

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.user_id"), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("total_messages", sa.Integer(), nullable=False),
        sa.Column("inserted", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("rowid_from", sa.BigInteger(), nullable=True),
        sa.Column("rowid_to", sa.BigInteger(), nullable=True),
        sa.Column("messages", sa.JSON(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "status in ('success','partial','failed','no_messages')",
            name="ck_sync_runs_status",
        ),
    )
    op.create_index("ix_sync_runs_user_started", "sync_runs", ["user_id", "started_at"])


def downgrade() -> None:
    op.drop_index("ix_sync_runs_user_started", table_name="sync_runs")
    op.drop_table("sync_runs")
    op.drop_index("ix_transactions_user_transacted_at", table_name="transactions")
    op.drop_index("uq_transactions_user_sms", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_categories_owner_slug", table_name="categories")
    op.drop_table("categories")
    op.drop_table("profiles")
