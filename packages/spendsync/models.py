"""Data models for ``spendsync``.

Pydantic models validate anything that crosses a trust boundary (caller
batches, oracle output, import rows) and double as the JSON shapes returned
to callers. Frozen dataclasses carry internal, already-validated values
(identity, vocabulary, canonical records, run summaries).
"""

from __future__ import annotations

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

Direction = Literal["credit", "debit"]
PaymentMethod = Literal["upi", "card", "neft", "imps", "netbanking", "wallet", "other"]
OutcomeStatus = Literal["inserted", "skipped", "error"]
RunStatus = Literal["success", "partial", "failed", "no_messages"]

PAYMENT_METHODS: tuple[str, ...] = ("upi", "card", "neft", "imps", "netbanking", "wallet", "other")
CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")


# ---------------------------------------------------------------------------
# Identity and vocabulary
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: str


@dataclass(frozen=True, slots=True)
class Category:
    """One entry of a user's category vocabulary (system or custom)."""

    id: str
    slug: str
    name: str


# ---------------------------------------------------------------------------
# Inbound batch (SMS path)
# ---------------------------------------------------------------------------


class RawMessage(BaseModel):
    """A raw SMS as reported by the device.

    ``id`` is unique per source device only; it becomes the dedup key once
    scoped by user.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: StrictInt
    sender: StrictStr
    body: StrictStr
    timestamp: StrictStr | None = None


class IngestRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api_key: StrictStr = Field(min_length=1)
    messages: list[RawMessage] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Oracle output
# ---------------------------------------------------------------------------

_TRANSACTION_FIELDS: tuple[str, ...] = (
    "amount",
    "currency",
    "direction",
    "merchant",
    "payment_method",
    "account_last4",
    "bank_name",
    "reference_id",
    "category_slug",
    "is_expense",
    "is_income",
    "confidence",
)
_BOOL: TypeAdapter[bool] = TypeAdapter(bool)


class ExtractionCandidate(BaseModel):
    """Oracle verdict for a single message.

    Oracle output is untrusted. Soft problems are normalized away rather than
    rejected: a non-positive amount becomes ``None`` (the pipeline then skips
    the message as missing a required field), an unknown payment method
    becomes ``"other"``, and blank strings become ``None``. Transaction fields
    are cleared when ``is_transaction`` is false and ``skip_reason`` is
    cleared when it is true.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)

    sms_id: int
    is_transaction: bool
    amount: float | None = None
    currency: str | None = None
    direction: Direction | None = None
    merchant: str | None = None
    payment_method: PaymentMethod | None = None
    account_last4: str | None = None
    bank_name: str | None = None
    reference_id: str | None = None
    category_slug: str | None = None
    is_expense: bool | None = None
    is_income: bool | None = None
    confidence: Literal["high", "medium", "low"] | None = None
    skip_reason: str | None = None

    @field_validator(
        "currency",
        "merchant",
        "bank_name",
        "reference_id",
        "category_slug",
        "skip_reason",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, v: float | None) -> float | None:
        if v is None or not math.isfinite(v) or v <= 0:
            return None
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str | None) -> str | None:
        return v.upper() if v else None

    @field_validator("direction", mode="before")
    @classmethod
    def _lower_direction(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("payment_method", mode="before")
    @classmethod
    def _coerce_payment_method(cls, v: Any) -> Any:
        if v is None:
            return None
        s = str(v).strip().lower()
        if not s:
            return None
        return s if s in PAYMENT_METHODS else "other"

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() in CONFIDENCE_LEVELS:
            return v.strip().lower()
        return None

    @field_validator("account_last4", mode="before")
    @classmethod
    def _last_four_digits(cls, v: Any) -> Any:
        if v is None:
            return None
        digits = "".join(ch for ch in str(v) if ch.isdigit())
        return digits[-4:] if len(digits) >= 4 else None

    @model_validator(mode="before")
    @classmethod
    def _clear_inapplicable(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        out = dict(data)
        try:
            flag = _BOOL.validate_python(out.get("is_transaction"))
        except ValidationError:
            # Left for the field validator to reject.
            return out
        out["is_transaction"] = flag
        if flag:
            out.pop("skip_reason", None)
        else:
            for name in _TRANSACTION_FIELDS:
                out.pop(name, None)
        return out


# ---------------------------------------------------------------------------
# Canonical record and store results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """Canonical transaction ready for persistence.

    ``amount`` is in base currency. ``original_amount``/``original_currency``
    are both set (foreign-currency provenance) or both ``None``.
    """

    user_id: str
    amount: float
    direction: Direction
    transacted_at: datetime
    source: Literal["sms", "axio", "manual"]
    is_expense: bool
    is_income: bool
    merchant: str | None = None
    merchant_normalized: str | None = None
    payment_method: str | None = None
    account_last4: str | None = None
    bank_name: str | None = None
    reference_id: str | None = None
    raw_sms: str | None = None
    sms_id: int | None = None
    sms_sender: str | None = None
    category_id: str | None = None
    notes: str | None = None
    original_amount: float | None = None
    original_currency: str | None = None

    def __post_init__(self) -> None:
        if not self.amount > 0:
            raise ValueError(f"amount must be positive, got {self.amount!r}")
        if (self.original_amount is None) != (self.original_currency is None):
            raise ValueError("original_amount and original_currency must be set together")
        if self.is_expense and self.is_income:
            raise ValueError("a transaction cannot be both expense and income")


class StoreStatus(enum.Enum):
    OK = "ok"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StoreResult:
    status: StoreStatus
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """True for a fresh insert and for a dedup-key conflict."""

        return self.status is not StoreStatus.ERROR


# ---------------------------------------------------------------------------
# Outcomes returned to callers
# ---------------------------------------------------------------------------


class TransactionPreview(BaseModel):
    amount: float
    direction: Direction
    merchant: str | None
    category: str | None


class MessageOutcome(BaseModel):
    sms_id: int
    status: OutcomeStatus
    reason: str | None = None
    transaction: TransactionPreview | None = None


class IngestResult(BaseModel):
    inserted: int
    skipped: int
    errors: int
    total: int
    details: list[MessageOutcome]
    status: RunStatus
    run_id: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Return the caller-facing response body."""

        body: dict[str, Any] = {
            "success": True,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "total": self.total,
            "details": [d.model_dump(exclude_none=True) for d in self.details],
        }
        if self.run_id is not None:
            body["run_id"] = self.run_id
        return body


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Audit record for one ingestion batch. Immutable once built."""

    id: str
    user_id: str
    source: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    total_messages: int
    inserted: int
    skipped: int
    errors: int
    messages: list[dict[str, Any]] = field(default_factory=list)
    details: list[dict[str, Any]] = field(default_factory=list)
    rowid_from: int | None = None
    rowid_to: int | None = None


# ---------------------------------------------------------------------------
# Axio import
# ---------------------------------------------------------------------------


class AxioRow(BaseModel):
    """One row of an Axio expense-tracker export (all values as text)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    date: StrictStr
    time: StrictStr
    place: StrictStr
    amount: StrictStr
    direction: StrictStr  # "DR" or "CR"
    account: StrictStr
    expense: StrictStr  # "Yes", "No" or "'-"
    income: StrictStr
    category: StrictStr
    tags: StrictStr | None = None
    note: StrictStr | None = None


class ImportRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api_key: StrictStr = Field(min_length=1)
    rows: list[AxioRow]


class ImportResult(BaseModel):
    inserted: int
    skipped: int
    errors: int
    total: int
    error_details: list[str] = Field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
            "total": self.total,
        }
        if self.error_details:
            body["errorDetails"] = list(self.error_details)
        return body


__all__ = [
    "AxioRow",
    "Category",
    "Direction",
    "ExtractionCandidate",
    "Identity",
    "ImportRequest",
    "ImportResult",
    "IngestRequest",
    "IngestResult",
    "MessageOutcome",
    "PaymentMethod",
    "RawMessage",
    "RunStatus",
    "RunSummary",
    "StoreResult",
    "StoreStatus",
    "TransactionPreview",
    "TransactionRecord",
]
