"""Extraction oracle: one OpenAI Responses API call per message batch.

Public API:
    - :class:`ExtractionOracle` (protocol)
    - :class:`OpenAIExtractionOracle`

No side effects occur at import time (no client creation, no environment
reads). The client is created lazily on the first call.
"""

from __future__ import annotations

import json
import random
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from openai import OpenAI
from pydantic import ValidationError

from . import prompting
from .config import DEFAULT_MODEL
from .errors import OracleError
from .logging_setup import get_logger
from .models import Category, ExtractionCandidate, RawMessage

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("spendsync.oracle")


class ExtractionOracle(Protocol):
    def extract(
        self, messages: Sequence[RawMessage], categories: Sequence[Category]
    ) -> list[ExtractionCandidate]:
        """Return zero or more candidates for the batch (order not guaranteed)."""
        ...


# ---- Internal helpers --------------------------------------------------------


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON mapping from an OpenAI Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` if no text is found or it is not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


def parse_candidates(decoded: Mapping[str, Any]) -> list[ExtractionCandidate]:
    """Validate the ``results`` array item by item.

    A missing or non-list ``results`` is a shape error (``ValueError``).
    Individual items that fail validation are dropped with a warning.
    """

    results = decoded.get("results")
    if not isinstance(results, list):
        raise ValueError("Model output is missing the 'results' array")

    out: list[ExtractionCandidate] = []
    for pos, item in enumerate(results):
        try:
            out.append(ExtractionCandidate.model_validate(item))
        except ValidationError as e:
            _logger.warning(
                "oracle:item_dropped position=%d errors=%d", pos, e.error_count()
            )
    return out


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


# ---- Adapter -----------------------------------------------------------------


class OpenAIExtractionOracle:
    """Extract structured transactions from raw SMS via the Responses API.

    Parameters
    ----------
    model:
        Model name passed to ``client.responses.create``.
    client_factory:
        Zero-argument callable returning an OpenAI client. Defaults to
        ``OpenAI`` (reads ``OPENAI_API_KEY`` from the environment).
    max_attempts:
        Total attempts per batch; only 429/5xx responses are retried.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        client_factory: Callable[[], Any] | None = None,
        max_attempts: int = _MAX_ATTEMPTS,
    ) -> None:
        self.model = model
        self._client_factory = client_factory
        self._client: Any | None = None
        self._max_attempts = max(1, max_attempts)

    def _get_client(self) -> Any:
        if self._client is None:
            factory = self._client_factory or OpenAI
            self._client = factory()
        return self._client

    def extract(
        self, messages: Sequence[RawMessage], categories: Sequence[Category]
    ) -> list[ExtractionCandidate]:
        if not messages:
            return []

        instructions = prompting.build_system_instructions(categories)
        user_content = prompting.build_user_content(
            prompting.serialize_messages_to_json(messages), count=len(messages)
        )
        text_format = prompting.build_response_format(categories)

        _logger.info(
            "oracle:request model=%s messages=%d categories=%d",
            self.model,
            len(messages),
            len(categories),
        )

        client = self._get_client()
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.model,
                    instructions=instructions,
                    input=user_content,
                    text={"format": text_format},
                    temperature=0,
                )
                candidates = parse_candidates(_extract_response_json_mapping(resp))
            except Exception as e:  # noqa: BLE001 - SDK raises many error types
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= self._max_attempts or not _is_retryable(e):
                    _logger.error(
                        "oracle:failed_terminal messages=%d latency_ms=%.2f error=%s attempt=%d",
                        len(messages),
                        dt_ms,
                        e.__class__.__name__,
                        attempt,
                    )
                    raise OracleError(f"extraction failed: {e}") from e
                _logger.warning(
                    "oracle:retry messages=%d latency_ms=%.2f error=%s attempt=%d",
                    len(messages),
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            dt_ms = (time.perf_counter() - t0) * 1000.0
            _logger.info(
                "oracle:done messages=%d candidates=%d latency_ms=%.2f",
                len(messages),
                len(candidates),
                dt_ms,
            )
            return candidates


__all__ = [
    "ExtractionOracle",
    "OpenAIExtractionOracle",
    "parse_candidates",
]
