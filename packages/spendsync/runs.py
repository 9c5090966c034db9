"""Run summaries: status rules, construction, and the background writer.

The summary write trails the caller's response. ``RunSummaryWriter`` hands
each write to a single background worker; failures are logged and never
reach the caller. A process that exits before :meth:`RunSummaryWriter.close`
loses any summary still queued.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any

from .logging_setup import get_logger, log_event
from .models import MessageOutcome, RawMessage, RunStatus, RunSummary

SMS_SYNC_SOURCE = "sms_sync"

_logger = get_logger("spendsync.runs")


def compute_run_status(*, total: int, inserted: int, errors: int) -> RunStatus:
    """Derive the batch status from the counters.

    ``failed``: at least one error and nothing inserted. ``partial``: errors
    and inserts both present. ``success``: no errors. ``no_messages`` for an
    empty batch.
    """

    if total == 0:
        return "no_messages"
    if errors > 0 and inserted == 0:
        return "failed"
    if errors > 0:
        return "partial"
    return "success"


def build_run_summary(
    *,
    user_id: str,
    messages: Sequence[RawMessage],
    details: Sequence[MessageOutcome],
    inserted: int,
    skipped: int,
    errors: int,
    started_at: datetime,
    completed_at: datetime,
    source: str = SMS_SYNC_SOURCE,
    run_id: str | None = None,
) -> RunSummary:
    ids = [m.id for m in messages]
    duration_ms = max(0, int((completed_at - started_at).total_seconds() * 1000))
    return RunSummary(
        id=run_id or str(uuid.uuid4()),
        user_id=user_id,
        source=source,
        status=compute_run_status(total=len(messages), inserted=inserted, errors=errors),
        started_at=started_at,
        completed_at=completed_at,
        duration_ms=duration_ms,
        total_messages=len(messages),
        inserted=inserted,
        skipped=skipped,
        errors=errors,
        messages=[m.model_dump() for m in messages],
        details=[d.model_dump(exclude_none=True) for d in details],
        rowid_from=min(ids) if ids else None,
        rowid_to=max(ids) if ids else None,
    )


class RunSummaryWriter:
    """Write run summaries on one background worker thread.

    Parameters
    ----------
    write:
        Callable persisting a :class:`RunSummary` (typically
        ``store.insert_run_summary``).
    """

    def __init__(self, write: Callable[[RunSummary], Any]) -> None:
        self._write = write
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="run-summary")
        self._closed = False

    def _run(self, summary: RunSummary) -> bool:
        try:
            self._write(summary)
        except Exception:  # noqa: BLE001 - the summary is best-effort
            log_event(
                _logger,
                "runs:write_failed",
                level=logging.ERROR,
                exc_info=True,
                run_id=summary.id,
                user=summary.user_id,
            )
            return False
        _logger.info(
            "runs:written run_id=%s status=%s total=%d",
            summary.id,
            summary.status,
            summary.total_messages,
        )
        return True

    def submit(self, summary: RunSummary) -> Future[bool]:
        """Queue ``summary`` for writing; the future resolves to success."""

        if self._closed:
            raise RuntimeError("RunSummaryWriter is closed")
        return self._executor.submit(self._run, summary)

    def close(self) -> None:
        """Wait for queued writes and stop the worker."""

        self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> RunSummaryWriter:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = [
    "RunSummaryWriter",
    "SMS_SYNC_SOURCE",
    "build_run_summary",
    "compute_run_status",
]
