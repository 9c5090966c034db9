"""Logging for the ``spendsync`` package.

All loggers live under the ``"spendsync"`` namespace. Entrypoints (the CLI)
call :func:`configure_logging` once; library modules only call
:func:`get_logger` and never attach handlers.

Log lines are single ``event key=value ...`` records, e.g.::

    ingest:done user=3f2a9c1e... inserted=2 skipped=1 errors=0

:func:`log_event` renders that shape. User identifiers pass through
:func:`short_id` so full ids never reach the logs.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any

ROOT_LOGGER = "spendsync"
LEVEL_ENV = "SPENDSYNC_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# Fields whose values are user identifiers.
_ID_FIELDS = frozenset({"user", "user_id"})

logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: int | str | None = None, *, stream: IO[str] | None = None) -> None:
    """Attach the package's stream handler, or update its level if already attached.

    ``level`` defaults to ``SPENDSYNC_LOG_LEVEL`` and then ``INFO``.
    """

    logger = logging.getLogger(ROOT_LOGGER)
    resolved = _resolve_level(level)

    handler = next((h for h in logger.handlers if getattr(h, "_spendsync", False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        handler._spendsync = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False
    handler.setLevel(resolved)
    logger.setLevel(resolved)


def get_logger(name: str) -> logging.Logger:
    """Return ``name`` as a child of the package logger."""

    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def short_id(user_id: str | None) -> str:
    """First 8 characters of an identifier, or ``-`` when there is none."""

    if not user_id:
        return "-"
    return f"{user_id[:8]}..."


def _render_value(key: str, value: Any) -> str:
    if key in _ID_FIELDS:
        return short_id(value)
    if value is None:
        return "-"
    text = str(value)
    if not text or any(ch.isspace() or ch == "=" for ch in text):
        return repr(text)
    return text


def format_event(event: str, **fields: Any) -> str:
    """Render ``event`` and ``fields`` as one ``event key=value`` line."""

    parts = [event]
    parts.extend(f"{key}={_render_value(key, value)}" for key, value in fields.items())
    return " ".join(parts)


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    exc_info: bool = False,
    **fields: Any,
) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, format_event(event, **fields), exc_info=exc_info)
