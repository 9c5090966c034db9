"""spendsync: normalize bank SMS alerts and Axio exports into transactions.

Public API re-exports the two pipelines and their collaborators.
"""

from __future__ import annotations

from .axio_import import import_rows, load_axio_csv
from .config import Settings
from .currency import CurrencyConverter, ExchangeRateApiSource, RateCache, invert_rates
from .errors import (
    AuthorizationError,
    BatchValidationError,
    OracleError,
    RateSourceError,
    SpendsyncError,
)
from .ingest import ingest_messages
from .models import (
    AxioRow,
    Category,
    ExtractionCandidate,
    Identity,
    ImportResult,
    IngestResult,
    RawMessage,
    RunSummary,
    StoreResult,
    StoreStatus,
    TransactionRecord,
)
from .oracle import ExtractionOracle, OpenAIExtractionOracle
from .runs import RunSummaryWriter
from .store import SqlTransactionStore, TransactionStore

__all__ = [
    "AuthorizationError",
    "AxioRow",
    "BatchValidationError",
    "Category",
    "CurrencyConverter",
    "ExchangeRateApiSource",
    "ExtractionCandidate",
    "ExtractionOracle",
    "Identity",
    "ImportResult",
    "IngestResult",
    "OpenAIExtractionOracle",
    "OracleError",
    "RateCache",
    "RateSourceError",
    "RawMessage",
    "RunSummary",
    "RunSummaryWriter",
    "Settings",
    "SpendsyncError",
    "SqlTransactionStore",
    "StoreResult",
    "StoreStatus",
    "TransactionRecord",
    "TransactionStore",
    "ingest_messages",
    "import_rows",
    "invert_rates",
    "load_axio_csv",
]
