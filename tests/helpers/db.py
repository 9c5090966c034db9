"""DB helpers for tests: bootstrap a temporary SQLite DB and seed profiles/categories."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from sqlalchemy import event, func, select

from db.client import create_all, get_engine, session_scope
from db.models.finance import Category, Profile, SyncRun, Transaction

# (slug, name) pairs; a small slice of the production system vocabulary.
SYSTEM_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("food", "Food & Dining"),
    ("groceries", "Groceries"),
    ("transport", "Transport"),
    ("shopping", "Shopping"),
    ("bill-payment", "Bill Payment"),
    ("salary", "Salary"),
    ("transfer", "Transfer"),
    ("other", "Other"),
)


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize the schema, and return the URL.

    A file-backed database lets several SQLAlchemy connections share state
    (in-memory databases are per-connection).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):  # pragma: no cover - tiny bridge
        dbapi_conn.execute("PRAGMA foreign_keys = ON")

    create_all(database_url=url)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_profile(*, database_url: str, api_key: str, user_id: str) -> str:
    with session_scope(database_url=database_url) as s:
        s.add(Profile(user_id=user_id, api_key=api_key))
    return user_id


def seed_system_categories(
    *, database_url: str, categories: Iterable[tuple[str, str]] = SYSTEM_CATEGORIES
) -> dict[str, str]:
    """Insert system categories and return ``{slug: id}``."""

    out: dict[str, str] = {}
    with session_scope(database_url=database_url) as s:
        for order, (slug, name) in enumerate(categories):
            row = Category(slug=slug, name=name, is_system=True, sort_order=order)
            s.add(row)
            s.flush()
            out[slug] = row.id
    return out


def seed_custom_category(*, database_url: str, user_id: str, slug: str, name: str) -> str:
    with session_scope(database_url=database_url) as s:
        row = Category(slug=slug, name=name, is_system=False, user_id=user_id)
        s.add(row)
        s.flush()
        return row.id


def count_transactions(database_url: str, **filters: object) -> int:
    stmt = select(func.count()).select_from(Transaction)
    for name, value in filters.items():
        stmt = stmt.where(getattr(Transaction, name) == value)
    with session_scope(database_url=database_url) as s:
        return int(s.scalar(stmt) or 0)


def fetch_transactions(database_url: str) -> list[Transaction]:
    with session_scope(database_url=database_url) as s:
        return list(s.scalars(select(Transaction).order_by(Transaction.sms_id)).all())


def fetch_sync_runs(database_url: str) -> list[SyncRun]:
    with session_scope(database_url=database_url) as s:
        return list(s.scalars(select(SyncRun)).all())
