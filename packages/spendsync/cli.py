# ruff: noqa: I001
"""CLI for the ``spendsync`` package.

This module exposes callable command handlers (``cmd_ingest_sms``,
``cmd_import_axio``) and a Typer-based console interface. Environment
variables (``DATABASE_URL``, ``OPENAI_API_KEY``, ``SPENDSYNC_*``) are loaded
from a local ``.env`` using ``python-dotenv`` before any command runs.

Every command prints one JSON document to stdout. Batch-level failures print
``{"success": false, "error": ..., "status": <http-like code>}`` and exit 1.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv

from .config import Settings
from .errors import AuthorizationError, BatchValidationError, OracleError
from .logging_setup import configure_logging, get_logger

_logger = get_logger("spendsync.cli")


# ---- Collaborator factories (patched in tests) -------------------------------


def _build_store(settings: Settings):
    from .store import SqlTransactionStore

    return SqlTransactionStore(settings.database_url)


def _build_oracle(settings: Settings):
    from .oracle import OpenAIExtractionOracle

    return OpenAIExtractionOracle(settings.model)


def _build_converter(settings: Settings):
    from .currency import CurrencyConverter, ExchangeRateApiSource

    return CurrencyConverter(
        ExchangeRateApiSource(settings.rates_url), ttl_seconds=settings.rate_ttl_seconds
    )


# ---- Output helpers ------------------------------------------------------------


def _emit(body: dict[str, Any]) -> None:
    typer.echo(json.dumps(body, ensure_ascii=False, indent=2, default=str))


def _emit_error(error: str, *, status: int, details: Any = None) -> int:
    body: dict[str, Any] = {"success": False, "error": error, "status": status}
    if details is not None:
        body["details"] = details
    _emit(body)
    return 1


def _resolve_api_key(api_key: str | None, settings: Settings) -> str:
    return api_key or settings.api_key or ""


def _read_messages(path: Path) -> list[Any]:
    """Accept a JSON list of messages or an ``{"messages": [...]}`` object."""

    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise BatchValidationError(
            "Invalid request body", [{"loc": ["messages"], "msg": "expected a list"}]
        )
    return data


# ---- Command handlers ----------------------------------------------------------


def cmd_ingest_sms(
    json_path: Path, *, api_key: str | None = None, database_url: str | None = None
) -> int:
    """Ingest a batch of raw SMS messages from a JSON file. Returns an exit code."""

    from .ingest import ingest_messages
    from .runs import RunSummaryWriter

    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)

    try:
        messages = _read_messages(json_path)
    except (OSError, json.JSONDecodeError) as e:
        return _emit_error(f"cannot read {json_path}: {e}", status=400)
    except BatchValidationError as e:
        return _emit_error(str(e), status=400, details=e.details)

    store = _build_store(settings)
    with RunSummaryWriter(store.insert_run_summary) as writer:
        try:
            result = ingest_messages(
                _resolve_api_key(api_key, settings),
                messages,
                store=store,
                oracle=_build_oracle(settings),
                converter=_build_converter(settings),
                summary_writer=writer,
            )
        except BatchValidationError as e:
            return _emit_error(str(e), status=400, details=e.details)
        except AuthorizationError as e:
            return _emit_error(str(e), status=401)
        except OracleError as e:
            return _emit_error(
                "Failed to parse SMS with the extraction oracle", status=500, details=str(e)
            )

    _emit(result.to_response())
    return 0


def cmd_import_axio(
    csv_path: Path, *, api_key: str | None = None, database_url: str | None = None
) -> int:
    """Import an Axio CSV export. Returns an exit code."""

    import csv

    from .axio_import import import_rows, load_axio_csv

    settings = Settings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)

    try:
        rows = load_axio_csv(csv_path)
    except (OSError, csv.Error) as e:
        return _emit_error(f"cannot read {csv_path}: {e}", status=400)

    try:
        result = import_rows(
            _resolve_api_key(api_key, settings), rows, store=_build_store(settings)
        )
    except BatchValidationError as e:
        return _emit_error(str(e), status=400, details=e.details)
    except AuthorizationError as e:
        return _emit_error(str(e), status=401)

    _emit(result.to_response())
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Normalize bank SMS alerts and Axio exports into transactions. "
        "Loads DATABASE_URL and OPENAI_API_KEY from a local .env before running."
    ),
)

API_KEY_OPTION = typer.Option(
    None, "--api-key", help="Caller API key (falls back to SPENDSYNC_API_KEY)."
)
DATABASE_URL_OPTION = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("ingest-sms")
def ingest_sms_cmd(
    json_path: Path = typer.Option(
        ..., "--json-path", exists=True, dir_okay=False, help="JSON file with raw messages."
    ),
    api_key: str | None = API_KEY_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Extract, categorize and store transactions from raw SMS messages."""

    code = cmd_ingest_sms(json_path, api_key=api_key, database_url=database_url)
    if code:
        raise typer.Exit(code)


@app.command("import-axio")
def import_axio_cmd(
    csv_path: Path = typer.Option(
        ..., "--csv-path", exists=True, dir_okay=False, help="Axio CSV export."
    ),
    api_key: str | None = API_KEY_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Import historical transactions from an Axio expense-tracker export."""

    code = cmd_import_axio(csv_path, api_key=api_key, database_url=database_url)
    if code:
        raise typer.Exit(code)


@app.command("health")
def health_cmd() -> None:
    """Print a liveness document."""

    _emit({"status": "ok", "timestamp": datetime.now(UTC).isoformat()})


@app.command("init-db")
def init_db_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Create all tables on the configured database (development helper)."""

    from db.client import create_all

    url = database_url or Settings.from_env().database_url
    try:
        create_all(database_url=url)
    except RuntimeError as e:
        raise typer.Exit(_emit_error(str(e), status=500)) from e
    _logger.info("cli:init_db done")
    _emit({"success": True})


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (falls back to SPENDSYNC_LOG_LEVEL)."
    ),
) -> None:
    """Load ``.env`` from the CWD (without overriding set variables) and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
