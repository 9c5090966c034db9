"""Batch-level error taxonomy.

Only these conditions abort a whole batch. Per-message outcomes (skips,
store rejections, duplicate replays) are reported as data in the result and
never raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SpendsyncError(Exception):
    """Base class for errors raised by the ``spendsync`` package."""


class AuthorizationError(SpendsyncError):
    """The caller credential does not resolve to a user."""


class BatchValidationError(SpendsyncError):
    """The request body does not match the expected batch shape."""

    def __init__(self, message: str, details: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.details = list(details)


class OracleError(SpendsyncError):
    """The extraction oracle call failed or returned an unusable body."""


class RateSourceError(SpendsyncError):
    """The exchange-rate source could not be fetched or parsed."""


__all__ = [
    "AuthorizationError",
    "BatchValidationError",
    "OracleError",
    "RateSourceError",
    "SpendsyncError",
]
