"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Ingestion records (uploaded receipts and statement files)
- Statement import jobs
- Ledger transactions materialized by the pipeline

Enforces uniqueness on transaction source_key.
"""

from .sqlite_store import (
    ImportJobRecord,
    ImportJobStatus,
    IngestionRecord,
    LedgerTransaction,
    PersistenceError,
    RecordNotFound,
    RecordStatus,
    StateStore,
    TransactionSource,
    TransactionType,
)

__all__ = [
    "StateStore",
    "IngestionRecord",
    "ImportJobRecord",
    "LedgerTransaction",
    "RecordStatus",
    "ImportJobStatus",
    "TransactionSource",
    "TransactionType",
    "PersistenceError",
    "RecordNotFound",
]
