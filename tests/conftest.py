"""Pytest configuration shared by the suite.

Puts the workspace ``packages/`` dir, the ``db`` library source and the repo
root on ``sys.path`` (so ``spendsync``, ``db`` and ``tests.helpers`` resolve
without an install), and keeps tests hermetic: no ``.env`` values, no cached
engines shared across tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
# Local packages precede anything installed.
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DATABASE_URL",
        "SPENDSYNC_API_KEY",
        "SPENDSYNC_MODEL",
        "SPENDSYNC_RATES_URL",
        "SPENDSYNC_RATE_TTL_SECONDS",
        "SPENDSYNC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _dispose_engines():
    yield
    from db.client import dispose_engines

    dispose_engines()
