"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models used by ``spendsync``.
"""

from .finance import Base, Category, Profile, SyncRun, Transaction

__all__ = [
    "Base",
    "Category",
    "Profile",
    "SyncRun",
    "Transaction",
]
