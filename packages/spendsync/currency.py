"""Currency conversion to the base currency (INR).

Rates are fetched from an exchange-rate endpoint, inverted into "base units
per one foreign unit" and cached for a fixed interval on the converter
instance. Fetch failures never propagate: the converter falls back to a fixed
table of approximate rates, and a currency present in neither table is
converted 1:1 and reported as unknown.

Concurrency: a stale cache is refreshed by one caller at a time. Other
callers keep getting the stale table instead of waiting on the refresh; only
a cold cache makes callers wait.
"""

from __future__ import annotations

import json
import math
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Any, Protocol

from .config import DEFAULT_RATE_TTL_SECONDS, DEFAULT_RATES_URL
from .errors import RateSourceError
from .logging_setup import get_logger

BASE_CURRENCY = "INR"

# Approximate INR per one unit of the foreign currency.
FALLBACK_RATES: Mapping[str, float] = MappingProxyType(
    {
        "INR": 1.0,
        "USD": 83.0,
        "EUR": 90.0,
        "GBP": 105.0,
        "AED": 22.6,
        "SGD": 62.0,
        "JPY": 0.55,
        "CAD": 61.0,
        "AUD": 54.0,
    }
)

_logger = get_logger("spendsync.currency")


def round_money(value: float) -> float:
    """Round half-up to two decimals (monetary precision)."""

    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def is_foreign_currency(code: str | None, base: str = BASE_CURRENCY) -> bool:
    """True when ``code`` names a currency other than ``base``.

    Missing/blank codes are treated as the base currency.
    """

    if not code or not code.strip():
        return False
    return code.strip().upper() != base.upper()


# ---------------------------------------------------------------------------
# Rate sources
# ---------------------------------------------------------------------------


class RateSource(Protocol):
    def fetch(self) -> Mapping[str, Any]:
        """Return rates expressed as "1 base unit = X foreign units"."""
        ...


class ExchangeRateApiSource:
    """Fetch ``{"rates": {...}}`` from an exchangerate-api style endpoint.

    The default endpoint is keyed on INR, so the returned table reads
    "1 INR = X foreign".
    """

    def __init__(self, url: str = DEFAULT_RATES_URL, *, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout

    def fetch(self) -> Mapping[str, Any]:
        req = urllib.request.Request(self.url, method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            raise RateSourceError(f"rate API error: {e.code} {e.reason}") from e
        except (urllib.error.URLError, OSError) as e:
            raise RateSourceError(f"rate API unreachable: {e}") from e

        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RateSourceError("rate API returned invalid JSON") from e
        rates = data.get("rates") if isinstance(data, Mapping) else None
        if not isinstance(rates, Mapping):
            raise RateSourceError("rate API response has no 'rates' object")
        return rates


def invert_rates(raw: Mapping[str, Any], *, base: str = BASE_CURRENCY) -> dict[str, float]:
    """Turn "1 base = X foreign" into "1 foreign = 1/X base".

    Non-numeric, non-finite and non-positive entries are dropped. The base
    currency always maps to exactly 1.
    """

    base = base.upper()
    out: dict[str, float] = {base: 1.0}
    for code, rate in raw.items():
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            continue
        r = float(rate)
        if not math.isfinite(r) or r <= 0:
            continue
        key = str(code).strip().upper()
        if not key or key == base:
            continue
        out[key] = 1.0 / r
    return out


# ---------------------------------------------------------------------------
# Cache and converter
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RateCache:
    """A rate table ("1 foreign = N base") and the clock reading it was taken at."""

    rates: Mapping[str, float]
    fetched_at: float
    live: bool = True

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds


@dataclass(frozen=True, slots=True)
class Conversion:
    converted_amount: float
    rate_used: float
    # False when the currency was in neither the live nor the fallback table.
    known: bool = True


class CurrencyConverter:
    """Convert foreign amounts to the base currency using a cached rate table.

    Parameters
    ----------
    rate_source:
        Object with a ``fetch()`` method returning "1 base = X foreign" rates.
    base:
        Base currency code (default ``INR``).
    ttl_seconds:
        How long a fetched table is served without refetching.
    fallback_rates:
        Table used when a refresh fails, and for codes the live table lacks.
        Defaults to :data:`FALLBACK_RATES` for an INR base, otherwise empty.
    clock:
        Monotonic clock; injectable for tests.
    cache:
        Optional pre-populated cache.
    """

    def __init__(
        self,
        rate_source: RateSource,
        *,
        base: str = BASE_CURRENCY,
        ttl_seconds: float = DEFAULT_RATE_TTL_SECONDS,
        fallback_rates: Mapping[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        cache: RateCache | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.base = base.upper()
        self._source = rate_source
        self._ttl = ttl_seconds
        if fallback_rates is None:
            fallback_rates = FALLBACK_RATES if self.base == BASE_CURRENCY else {}
        self._fallback = {k.upper(): float(v) for k, v in fallback_rates.items()}
        self._clock = clock
        self._cache = cache
        self._refresh_lock = threading.Lock()

    @property
    def cache(self) -> RateCache | None:
        return self._cache

    def rates(self) -> RateCache:
        """Return the current table, refreshing it when stale or missing."""

        cache = self._cache
        if cache is not None and cache.is_fresh(self._clock(), self._ttl):
            return cache

        if cache is not None:
            # Someone else is refreshing; serve the stale table meanwhile.
            if not self._refresh_lock.acquire(blocking=False):
                return cache
        else:
            self._refresh_lock.acquire()
        try:
            cache = self._cache
            now = self._clock()
            if cache is not None and cache.is_fresh(now, self._ttl):
                return cache
            cache = self._refresh(now)
            self._cache = cache
            return cache
        finally:
            self._refresh_lock.release()

    def _refresh(self, now: float) -> RateCache:
        try:
            rates = invert_rates(self._source.fetch(), base=self.base)
        except Exception:  # noqa: BLE001 - any source failure degrades to the fallback table
            _logger.warning(
                "currency:refresh_failed using_fallback currencies=%d",
                len(self._fallback),
                exc_info=True,
            )
            return RateCache(rates=dict(self._fallback), fetched_at=now, live=False)

        _logger.info(
            "currency:refreshed currencies=%d usd=%s eur=%s",
            len(rates),
            f"{rates['USD']:.2f}" if "USD" in rates else "-",
            f"{rates['EUR']:.2f}" if "EUR" in rates else "-",
        )
        return RateCache(rates=rates, fetched_at=now, live=True)

    def convert_to_base(self, amount: float, currency_code: str | None) -> Conversion:
        """Convert ``amount`` of ``currency_code`` into the base currency.

        The base currency (or a blank code) is returned unchanged at rate 1
        without consulting the cache.
        """

        code = (currency_code or "").strip().upper()
        if not code or code == self.base:
            return Conversion(converted_amount=amount, rate_used=1.0)

        table = self.rates().rates
        rate = table.get(code) or self._fallback.get(code)
        if not rate:
            _logger.warning("currency:unknown code=%s using_rate=1", code)
            return Conversion(converted_amount=round_money(amount), rate_used=1.0, known=False)

        return Conversion(converted_amount=round_money(amount * rate), rate_used=rate)


__all__ = [
    "BASE_CURRENCY",
    "Conversion",
    "CurrencyConverter",
    "ExchangeRateApiSource",
    "FALLBACK_RATES",
    "RateCache",
    "RateSource",
    "invert_rates",
    "is_foreign_currency",
    "round_money",
]
