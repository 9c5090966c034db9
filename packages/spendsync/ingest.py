"""SMS ingestion pipeline.

Public API:
    - :func:`validate_ingest_request`
    - :func:`ingest_messages`

Flow: validate the batch, resolve the caller, load the category vocabulary,
make one oracle call for the whole batch, then settle every message on its
own (skip, insert, or error). Only the three batch-level failures are
raised (``BatchValidationError``, ``AuthorizationError``, ``OracleError``);
everything that happens to a single message is reported in the result.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from .categories import category_id_for_slug
from .currency import CurrencyConverter, is_foreign_currency
from .errors import AuthorizationError, BatchValidationError
from .logging_setup import get_logger, log_event
from .models import (
    Category,
    ExtractionCandidate,
    IngestRequest,
    IngestResult,
    MessageOutcome,
    RawMessage,
    TransactionPreview,
    TransactionRecord,
)
from .oracle import ExtractionOracle
from .runs import RunSummaryWriter, build_run_summary, compute_run_status
from .store import TransactionStore

NO_ORACLE_RESULT = "No oracle result for this message"
NOT_A_TRANSACTION = "Not a transaction"
MISSING_REQUIRED = "Missing amount or direction"

_logger = get_logger("spendsync.ingest")


def _validation_details(err: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
        for e in err.errors(include_url=False)
    ]


def validate_ingest_request(payload: Mapping[str, Any]) -> IngestRequest:
    """Validate ``{"api_key": ..., "messages": [...]}``.

    Raises ``BatchValidationError`` with per-field details on failure.
    """

    try:
        return IngestRequest.model_validate(payload)
    except ValidationError as e:
        raise BatchValidationError("Invalid request body", _validation_details(e)) from e


def parse_message_timestamp(text: str | None, *, now: Callable[[], datetime]) -> datetime:
    """Return the message time, or ``now()`` when missing or unparseable.

    Accepts ISO-8601 strings and epoch milliseconds. Naive values are UTC.
    """

    s = (text or "").strip()
    if s:
        try:
            if s.isdigit():
                return datetime.fromtimestamp(int(s) / 1000.0, tz=UTC)
            parsed = datetime.fromisoformat(s)
        except (ValueError, OverflowError, OSError):
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return now()


def _index_candidates(candidates: Sequence[ExtractionCandidate]) -> dict[int, ExtractionCandidate]:
    by_id: dict[int, ExtractionCandidate] = {}
    for c in candidates:
        if c.sms_id in by_id:
            _logger.warning("ingest:duplicate_candidate sms_id=%d kept=first", c.sms_id)
            continue
        by_id[c.sms_id] = c
    return by_id


def _build_record(
    user_id: str,
    msg: RawMessage,
    cand: ExtractionCandidate,
    *,
    categories: Sequence[Category],
    converter: CurrencyConverter,
    now: Callable[[], datetime],
) -> TransactionRecord:
    assert cand.amount is not None and cand.direction is not None

    amount = cand.amount
    original_amount: float | None = None
    original_currency: str | None = None
    currency = cand.currency or converter.base
    if is_foreign_currency(currency, converter.base):
        conversion = converter.convert_to_base(cand.amount, currency)
        amount = conversion.converted_amount
        original_amount = cand.amount
        original_currency = currency.upper()
        _logger.info(
            "ingest:converted sms_id=%d currency=%s original=%.2f converted=%.2f rate=%.4f",
            msg.id,
            original_currency,
            original_amount,
            amount,
            conversion.rate_used,
        )

    # The oracle may opt out of the default (e.g. a self-transfer debit).
    is_expense = cand.direction == "debit" and (
        cand.is_expense if cand.is_expense is not None else True
    )
    is_income = cand.direction == "credit" and (
        cand.is_income if cand.is_income is not None else True
    )

    return TransactionRecord(
        user_id=user_id,
        amount=amount,
        direction=cand.direction,
        transacted_at=parse_message_timestamp(msg.timestamp, now=now),
        source="sms",
        is_expense=is_expense,
        is_income=is_income,
        merchant=cand.merchant,
        merchant_normalized=cand.merchant,
        payment_method=cand.payment_method,
        account_last4=cand.account_last4,
        bank_name=cand.bank_name,
        reference_id=cand.reference_id,
        raw_sms=msg.body,
        sms_id=msg.id,
        sms_sender=msg.sender,
        category_id=category_id_for_slug(cand.category_slug, categories),
        original_amount=original_amount,
        original_currency=original_currency,
    )


def _settle_message(
    user_id: str,
    msg: RawMessage,
    cand: ExtractionCandidate | None,
    *,
    categories: Sequence[Category],
    store: TransactionStore,
    converter: CurrencyConverter,
    now: Callable[[], datetime],
) -> MessageOutcome:
    if cand is None:
        return MessageOutcome(sms_id=msg.id, status="skipped", reason=NO_ORACLE_RESULT)
    if not cand.is_transaction:
        return MessageOutcome(
            sms_id=msg.id, status="skipped", reason=cand.skip_reason or NOT_A_TRANSACTION
        )
    if cand.amount is None or cand.direction is None:
        return MessageOutcome(sms_id=msg.id, status="skipped", reason=MISSING_REQUIRED)

    try:
        record = _build_record(
            user_id, msg, cand, categories=categories, converter=converter, now=now
        )
        result = store.upsert_transaction(record)
    except Exception as e:  # noqa: BLE001 - one message never aborts its siblings
        _logger.error("ingest:message_failed sms_id=%d error=%s", msg.id, e, exc_info=True)
        return MessageOutcome(sms_id=msg.id, status="error", reason=str(e) or e.__class__.__name__)

    if not result.succeeded:
        return MessageOutcome(sms_id=msg.id, status="error", reason=result.error or "Insert failed")
    return MessageOutcome(
        sms_id=msg.id,
        status="inserted",
        transaction=TransactionPreview(
            amount=cand.amount,
            direction=cand.direction,
            merchant=cand.merchant,
            category=cand.category_slug,
        ),
    )


def ingest_messages(
    credential: str,
    messages: Sequence[RawMessage | Mapping[str, Any]],
    *,
    store: TransactionStore,
    oracle: ExtractionOracle,
    converter: CurrencyConverter,
    summary_writer: RunSummaryWriter | None = None,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> IngestResult:
    """Ingest one batch of raw SMS messages for the caller behind ``credential``.

    Parameters
    ----------
    credential:
        Opaque caller credential (API key).
    messages:
        Raw messages, as :class:`RawMessage` or plain mappings.
    store, oracle, converter:
        Collaborators; see :mod:`spendsync.store`, :mod:`spendsync.oracle`
        and :mod:`spendsync.currency`.
    summary_writer:
        When given, the run summary is handed to it after the result is
        computed. The write happens in the background and its failure never
        changes the result.
    now:
        Wall clock (aware datetimes); injectable for tests.

    Returns
    -------
    IngestResult
        Counts plus one outcome per input message, in input order.

    Raises
    ------
    BatchValidationError
        The batch is empty or malformed. Raised before any lookup.
    AuthorizationError
        The credential does not resolve to a user.
    OracleError
        The extraction call failed; nothing was inserted.
    """

    request = validate_ingest_request({"api_key": credential, "messages": list(messages)})
    started_at = now()
    t0 = time.perf_counter()

    identity = store.get_identity(request.api_key)
    if identity is None:
        raise AuthorizationError("Invalid API key")
    user_id = identity.user_id
    batch = request.messages
    log_event(_logger, "ingest:start", user=user_id, messages=len(batch))

    categories = store.get_categories(user_id)
    if not categories:
        log_event(_logger, "ingest:empty_vocabulary", level=logging.WARNING, user=user_id)

    candidates = _index_candidates(oracle.extract(batch, categories))

    details: list[MessageOutcome] = []
    counts = {"inserted": 0, "skipped": 0, "error": 0}
    for msg in batch:
        outcome = _settle_message(
            user_id,
            msg,
            candidates.get(msg.id),
            categories=categories,
            store=store,
            converter=converter,
            now=now,
        )
        counts[outcome.status] += 1
        details.append(outcome)

    completed_at = now()
    duration_ms = (time.perf_counter() - t0) * 1000.0
    run_id = str(uuid.uuid4()) if summary_writer is not None else None
    result = IngestResult(
        inserted=counts["inserted"],
        skipped=counts["skipped"],
        errors=counts["error"],
        total=len(batch),
        details=details,
        status=compute_run_status(
            total=len(batch), inserted=counts["inserted"], errors=counts["error"]
        ),
        run_id=run_id,
    )
    log_event(
        _logger,
        "ingest:done",
        user=user_id,
        inserted=result.inserted,
        skipped=result.skipped,
        errors=result.errors,
        status=result.status,
        latency_ms=f"{duration_ms:.2f}",
    )

    if summary_writer is not None:
        try:
            summary_writer.submit(
                build_run_summary(
                    run_id=run_id,
                    user_id=user_id,
                    messages=batch,
                    details=details,
                    inserted=result.inserted,
                    skipped=result.skipped,
                    errors=result.errors,
                    started_at=started_at,
                    completed_at=completed_at,
                )
            )
        except Exception:  # noqa: BLE001 - summary writes are best-effort
            log_event(
                _logger,
                "ingest:summary_not_queued",
                level=logging.ERROR,
                exc_info=True,
                user=user_id,
                run_id=run_id,
            )
    return result


__all__ = [
    "MISSING_REQUIRED",
    "NOT_A_TRANSACTION",
    "NO_ORACLE_RESULT",
    "ingest_messages",
    "parse_message_timestamp",
    "validate_ingest_request",
]
