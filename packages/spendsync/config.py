"""Environment-driven settings.

Entrypoints load ``.env`` (``python-dotenv``, never overriding variables that
are already set) before calling :meth:`Settings.from_env`. ``OPENAI_API_KEY``
is read directly by the OpenAI SDK and is not duplicated here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_RATES_URL = "https://api.exchangerate-api.com/v4/latest/INR"
DEFAULT_RATE_TTL_SECONDS = 3600.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None
    model: str = DEFAULT_MODEL
    rates_url: str = DEFAULT_RATES_URL
    rate_ttl_seconds: float = DEFAULT_RATE_TTL_SECONDS
    api_key: str | None = None
    log_level: str | None = None

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            model=os.getenv("SPENDSYNC_MODEL") or DEFAULT_MODEL,
            rates_url=os.getenv("SPENDSYNC_RATES_URL") or DEFAULT_RATES_URL,
            rate_ttl_seconds=_env_float("SPENDSYNC_RATE_TTL_SECONDS", DEFAULT_RATE_TTL_SECONDS),
            api_key=os.getenv("SPENDSYNC_API_KEY") or None,
            log_level=os.getenv("SPENDSYNC_LOG_LEVEL") or None,
        )


__all__ = ["Settings"]
