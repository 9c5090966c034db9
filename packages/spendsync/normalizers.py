"""Text normalizers for the Axio export (and anything shaped like it).

Pure functions that map free-text fields onto canonical values: amounts,
DR/CR direction codes, account descriptors, category labels, and the split
date/time columns. Nothing here touches the network or the database.

Account descriptors are parsed by an ordered rule table (``ACCOUNT_RULES``);
the first rule that matches wins. Narrow rules (cash, wallets, credit/debit
cards) sit before the generic ``<BANK> <last4>`` rule so a card is never read
as a bank account.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation

# Axio timestamps are local Indian time.
IST = timezone(timedelta(hours=5, minutes=30), name="IST")

# ---------------------------------------------------------------------------
# Amounts and direction
# ---------------------------------------------------------------------------

_AMOUNT_NOISE_RE = re.compile(r"[,'\s]")


def parse_amount(text: str | None) -> float:
    """Parse an exported amount string into a non-negative float.

    - Thousands separators, stray quotes and whitespace are removed.
    - The export's ``'-13.0`` artifact (quote before minus) parses as 13.0.
    - The sign is dropped; direction is carried by a separate column.
    - Empty or unparseable input returns ``0.0`` so callers skip the row.
    """

    if not text:
        return 0.0
    s = text.strip()
    # Leading quote-before-minus artifact.
    if s.startswith("'-"):
        s = s[1:]
    s = _AMOUNT_NOISE_RE.sub("", s)
    if not s:
        return 0.0
    try:
        value = float(Decimal(s))
    except (InvalidOperation, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return abs(value)


def parse_direction(code: str | None) -> str:
    """Map the export's two-letter code to ``credit``/``debit``.

    Only ``CR`` means credit; anything else (``DR``, blank, garbage) is debit.
    """

    return "credit" if (code or "").strip().upper() == "CR" else "debit"


def is_affirmative(value: str | None) -> bool:
    """True only for a ``yes`` token. ``No``, ``'-`` and blanks are false."""

    return (value or "").strip().lower() == "yes"


# ---------------------------------------------------------------------------
# Account descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AccountInfo:
    payment_method: str | None = None
    account_last4: str | None = None
    bank_name: str | None = None


NO_ACCOUNT = AccountInfo()

# Wallet brands recognized anywhere in the descriptor: (needle, display name).
WALLET_BRANDS: tuple[tuple[str, str], ...] = (
    ("amazon pay", "Amazon Pay"),
    ("simpl", "Simpl"),
)


@dataclass(frozen=True, slots=True)
class AccountRule:
    """One descriptor rule: ``match`` returns a match object (or None) and
    ``build`` turns it into an :class:`AccountInfo`."""

    name: str
    match: Callable[[str], object | None]
    build: Callable[[object], AccountInfo]


def _contains(needle: str) -> Callable[[str], object | None]:
    def _match(text: str) -> object | None:
        return needle if needle in text.lower() else None

    return _match


def _wallet_match(text: str) -> object | None:
    lowered = text.lower()
    for needle, brand in WALLET_BRANDS:
        if needle in lowered:
            return brand
    return None


def _regex(pattern: str) -> Callable[[str], object | None]:
    compiled = re.compile(pattern, re.IGNORECASE)

    def _match(text: str) -> object | None:
        return compiled.match(text)

    return _match


def _bank_account(method: str) -> Callable[[object], AccountInfo]:
    def _build(m: object) -> AccountInfo:
        assert isinstance(m, re.Match)
        return AccountInfo(
            payment_method=method,
            account_last4=m.group(2),
            bank_name=f"{m.group(1)} Bank",
        )

    return _build


ACCOUNT_RULES: tuple[AccountRule, ...] = (
    # "CASH Spends"
    AccountRule("cash", _contains("cash"), lambda _m: AccountInfo(payment_method="other")),
    # "Amazon Pay  Unknown", "Simpl  Unknown"
    AccountRule(
        "wallet",
        _wallet_match,
        lambda brand: AccountInfo(payment_method="wallet", bank_name=str(brand)),
    ),
    # "HDFC credit 5487"
    AccountRule("credit_card", _regex(r"^(\w+)\s+credit\s+(\d{4})$"), _bank_account("card")),
    # "Kotak debit 8641"
    AccountRule("debit_card", _regex(r"^(\w+)\s+debit\s+(\d{4})$"), _bank_account("card")),
    # "Kotak  3760" (UPI-linked bank account)
    AccountRule("bank_account", _regex(r"^(\w+)\s+(\d{4})$"), _bank_account("upi")),
)


def parse_account(text: str | None, rules: Sequence[AccountRule] = ACCOUNT_RULES) -> AccountInfo:
    """Return the payment method, last four digits and bank for a descriptor.

    Rules are evaluated in order and the first match wins; no match (or an
    empty descriptor) yields all ``None``.
    """

    if not text:
        return NO_ACCOUNT
    s = text.strip()
    if not s:
        return NO_ACCOUNT
    for rule in rules:
        m = rule.match(s)
        if m is not None:
            return rule.build(m)
    return NO_ACCOUNT


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

# Axio labels whose slug differs from the straight conversion.
CATEGORY_OVERRIDES: dict[str, str] = {
    "FOOD & DRINKS": "food",
}

_WS_RE = re.compile(r"\s+")


def category_slug(label: str | None) -> str:
    """Convert an Axio category label to a vocabulary slug.

    ``"FOOD & DRINKS"`` -> ``"food"`` (override); ``"Bill Payment"`` ->
    ``"bill-payment"``.
    """

    upper = (label or "").strip().upper()
    override = CATEGORY_OVERRIDES.get(upper)
    if override:
        return override
    return _WS_RE.sub("-", upper.lower())


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?:\s*([AaPp][Mm]))?$")


def _parse_clock(text: str | None) -> time | None:
    m = _CLOCK_RE.match((text or "").strip())
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    meridiem = (m.group(3) or "").upper()
    if meridiem == "PM" and hours != 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return time(hours, minutes)


def compose_timestamp(date_text: str, time_text: str | None) -> datetime:
    """Combine ``YYYY-MM-DD`` and ``hh:mm AM/PM`` into an IST datetime.

    A malformed time falls back to midnight of the same day. A malformed date
    raises ``ValueError``.
    """

    day = date.fromisoformat((date_text or "").strip())
    clock = _parse_clock(time_text) or time(0, 0)
    return datetime.combine(day, clock, tzinfo=IST)


def build_notes(tags: str | None, note: str | None) -> str | None:
    parts = [p.strip() for p in (tags, note) if p and p.strip()]
    return " | ".join(parts) if parts else None


__all__ = [
    "ACCOUNT_RULES",
    "AccountInfo",
    "AccountRule",
    "CATEGORY_OVERRIDES",
    "IST",
    "WALLET_BRANDS",
    "build_notes",
    "category_slug",
    "compose_timestamp",
    "is_affirmative",
    "parse_account",
    "parse_amount",
    "parse_direction",
]
