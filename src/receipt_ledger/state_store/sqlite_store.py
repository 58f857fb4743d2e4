"""
SQLite-based state store implementation.

Tables:
- ingestion_records: One row per uploaded document and its processing outcome
- import_jobs: Statement import batches and their summaries
- transactions: Ledger entries materialized by the pipeline (or entered manually)
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any


class PersistenceError(Exception):
    """Raised when the storage layer fails to read or write."""

    pass


class RecordNotFound(PersistenceError):
    """Raised when a referenced record does not exist."""

    pass


class RecordStatus(str, Enum):
    """Status of an ingestion record."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class ImportJobStatus(str, Enum):
    """Status of a statement import batch."""

    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


class TransactionType(str, Enum):
    """Direction of a ledger transaction."""

    INCOME = "income"
    EXPENSE = "expense"


class TransactionSource(str, Enum):
    """Provenance tag recording how a ledger entry was created."""

    MANUAL = "manual"
    OCR = "ocr"
    IMPORT = "import"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class IngestionRecord:
    """Record of one uploaded document."""

    id: int
    owner_id: str
    status: RecordStatus
    original_name: str
    media_type: str | None
    storage_path: str | None
    size_bytes: int | None
    extracted_text: str | None
    confidence: float | None
    parsed_fields: dict[str, Any] | None
    error_message: str | None
    created_at: str
    processing_started_at: str | None
    processed_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "IngestionRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            status=RecordStatus(row["status"]),
            original_name=row["original_name"],
            media_type=row["media_type"],
            storage_path=row["storage_path"],
            size_bytes=row["size_bytes"],
            extracted_text=row["extracted_text"],
            confidence=row["confidence"],
            parsed_fields=json.loads(row["parsed_fields"]) if row["parsed_fields"] else None,
            error_message=row["error_message"],
            created_at=row["created_at"],
            processing_started_at=row["processing_started_at"],
            processed_at=row["processed_at"],
        )


@dataclass
class ImportJobRecord:
    """Record of a statement import batch."""

    id: int
    owner_id: str
    status: ImportJobStatus
    original_name: str | None
    file_record_id: int | None
    summary: dict[str, Any]
    error_message: str | None
    created_at: str
    started_at: str | None
    finished_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ImportJobRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            status=ImportJobStatus(row["status"]),
            original_name=row["original_name"],
            file_record_id=row["file_record_id"],
            summary=json.loads(row["summary"]) if row["summary"] else {},
            error_message=row["error_message"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
        )


@dataclass
class LedgerTransaction:
    """A ledger entry."""

    id: int
    owner_id: str
    type: TransactionType
    amount: Decimal
    currency: str
    date: str  # YYYY-MM-DD
    category: str
    source: TransactionSource
    merchant: str | None = None
    description: str | None = None
    record_id: int | None = None
    import_job_id: int | None = None
    source_key: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "LedgerTransaction":
        """Create from database row."""
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            type=TransactionType(row["type"]),
            amount=Decimal(row["amount"]),
            currency=row["currency"],
            date=row["date"],
            category=row["category"],
            source=TransactionSource(row["source"]),
            merchant=row["merchant"],
            description=row["description"],
            record_id=row["record_id"],
            import_job_id=row["import_job_id"],
            source_key=row["source_key"],
            meta=json.loads(row["meta"]) if row["meta"] else {},
            created_at=row["created_at"],
        )


class StateStore:
    """
    SQLite-based state store for the pipeline.

    Provides persistent tracking of:
    - Ingestion records (receipts and stored statement files)
    - Import jobs
    - Ledger transactions

    Every storage failure surfaces as PersistenceError so the scheduler can
    retry the owning job. Thread-safe for single-writer scenarios.
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize state store and apply pending migrations.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open state database {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ingestion_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    original_name TEXT NOT NULL,
                    media_type TEXT,
                    storage_path TEXT,
                    size_bytes INTEGER,
                    extracted_text TEXT,
                    confidence REAL,
                    parsed_fields TEXT,  -- JSON object
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    processing_started_at TEXT,
                    processed_at TEXT
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS import_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    original_name TEXT,
                    file_record_id INTEGER,
                    summary TEXT,  -- JSON object
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    finished_at TEXT,
                    FOREIGN KEY (file_record_id) REFERENCES ingestion_records(id)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    amount TEXT NOT NULL,  -- Decimal as string
                    currency TEXT NOT NULL,
                    date TEXT NOT NULL,
                    category TEXT NOT NULL,
                    merchant TEXT,
                    description TEXT,
                    source TEXT NOT NULL DEFAULT 'manual',
                    record_id INTEGER,
                    import_job_id INTEGER,
                    meta TEXT,  -- JSON object
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (record_id) REFERENCES ingestion_records(id),
                    FOREIGN KEY (import_job_id) REFERENCES import_jobs(id)
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_owner_status "
                "ON ingestion_records(owner_id, status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_owner_date "
                "ON transactions(owner_id, date)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_record ON transactions(record_id)"
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        except sqlite3.Error as e:
            raise PersistenceError(f"Migration failed: {e}") from e
        finally:
            conn.close()

    # Ingestion record methods

    def create_record(
        self,
        owner_id: str,
        original_name: str,
        media_type: str | None = None,
        storage_path: str | Path | None = None,
        size_bytes: int | None = None,
        status: RecordStatus = RecordStatus.UPLOADED,
    ) -> int:
        """Create an ingestion record. Returns the record ID."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO ingestion_records
                (owner_id, status, original_name, media_type, storage_path, size_bytes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    str(owner_id),
                    status.value,
                    original_name,
                    media_type,
                    str(storage_path) if storage_path else None,
                    size_bytes,
                    _utcnow(),
                ),
            )
            return cursor.lastrowid or 0

    def get_record(self, record_id: int) -> IngestionRecord | None:
        """Get ingestion record by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM ingestion_records WHERE id = ?", (record_id,)
            ).fetchone()
            return IngestionRecord.from_row(row) if row else None

    def require_record(self, record_id: int) -> IngestionRecord:
        """Get ingestion record by ID or raise RecordNotFound."""
        record = self.get_record(record_id)
        if record is None:
            raise RecordNotFound(f"Ingestion record {record_id} not found")
        return record

    def list_records(
        self, owner_id: str, status: RecordStatus | None = None
    ) -> list[IngestionRecord]:
        """List an owner's ingestion records, newest first."""
        query = "SELECT * FROM ingestion_records WHERE owner_id = ?"
        params: list[Any] = [str(owner_id)]
        if status:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY id DESC"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [IngestionRecord.from_row(row) for row in rows]

    def list_records_by_status(self, *statuses: RecordStatus) -> list[IngestionRecord]:
        """List records of every owner in any of the given statuses, oldest first."""
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM ingestion_records WHERE status IN ({placeholders}) ORDER BY id ASC",
                [RecordStatus(s).value for s in statuses],
            ).fetchall()
            return [IngestionRecord.from_row(row) for row in rows]

    def _update_record(self, record_id: int, **fields: Any) -> None:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE ingestion_records SET {assignments} WHERE id = ?",
                (*fields.values(), record_id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFound(f"Ingestion record {record_id} not found")

    def mark_record_processing(self, record_id: int) -> None:
        """Transition a record to processing (also used when a retry re-enters)."""
        self._update_record(
            record_id,
            status=RecordStatus.PROCESSING.value,
            error_message=None,
            processing_started_at=_utcnow(),
        )

    def save_record_extraction(
        self,
        record_id: int,
        extracted_text: str,
        confidence: float,
        parsed_fields: dict[str, Any],
    ) -> None:
        """Persist extracted text, confidence and parsed fields."""
        self._update_record(
            record_id,
            extracted_text=extracted_text,
            confidence=confidence,
            parsed_fields=json.dumps(parsed_fields),
        )

    def mark_record_done(self, record_id: int) -> None:
        """Transition a record to done."""
        self._update_record(
            record_id,
            status=RecordStatus.DONE.value,
            error_message=None,
            processed_at=_utcnow(),
        )

    def mark_record_error(self, record_id: int, error_message: str) -> None:
        """Transition a record to error with the captured message."""
        self._update_record(
            record_id,
            status=RecordStatus.ERROR.value,
            error_message=error_message,
            processed_at=_utcnow(),
        )

    # Import job methods

    def create_import_job(self, owner_id: str, original_name: str | None = None) -> int:
        """Create a queued import job. Returns the job ID."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO import_jobs (owner_id, status, original_name, summary, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (
                    str(owner_id),
                    ImportJobStatus.QUEUED.value,
                    original_name,
                    json.dumps({"imported": 0, "failed": 0, "errors": []}),
                    _utcnow(),
                ),
            )
            return cursor.lastrowid or 0

    def get_import_job(self, job_id: int) -> ImportJobRecord | None:
        """Get import job by ID."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM import_jobs WHERE id = ?", (job_id,)).fetchone()
            return ImportJobRecord.from_row(row) if row else None

    def require_import_job(self, job_id: int) -> ImportJobRecord:
        """Get import job by ID or raise RecordNotFound."""
        job = self.get_import_job(job_id)
        if job is None:
            raise RecordNotFound(f"Import job {job_id} not found")
        return job

    def _update_import_job(self, job_id: int, **fields: Any) -> None:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE import_jobs SET {assignments} WHERE id = ?",
                (*fields.values(), job_id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFound(f"Import job {job_id} not found")

    def mark_import_running(self, job_id: int) -> None:
        """Transition an import job to running."""
        self._update_import_job(
            job_id,
            status=ImportJobStatus.RUNNING.value,
            error_message=None,
            started_at=_utcnow(),
        )

    def attach_import_file(self, job_id: int, file_record_id: int) -> None:
        """Link the stored statement file to its import job."""
        self._update_import_job(job_id, file_record_id=file_record_id)

    def finish_import_job(self, job_id: int, summary: dict[str, Any]) -> None:
        """Mark import job finished with its summary."""
        self._update_import_job(
            job_id,
            status=ImportJobStatus.FINISHED.value,
            summary=json.dumps(summary),
            finished_at=_utcnow(),
        )

    def fail_import_job(
        self, job_id: int, error_message: str, summary: dict[str, Any] | None = None
    ) -> None:
        """Mark import job failed with the captured error."""
        if summary is None:
            summary = {"imported": 0, "failed": 0, "errors": [error_message]}
        self._update_import_job(
            job_id,
            status=ImportJobStatus.FAILED.value,
            error_message=error_message,
            summary=json.dumps(summary),
            finished_at=_utcnow(),
        )

    # Transaction methods

    def create_transaction(
        self,
        owner_id: str,
        tx_type: TransactionType,
        amount: Decimal,
        date: "date | str",
        category: str,
        currency: str,
        source: TransactionSource = TransactionSource.MANUAL,
        merchant: str | None = None,
        description: str | None = None,
        record_id: int | None = None,
        import_job_id: int | None = None,
        source_key: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> int | None:
        """
        Create a ledger transaction.

        Returns:
            Transaction ID, or None if a transaction with the same
            source_key already exists

        Raises:
            PersistenceError: If the values are invalid or the write fails
        """
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise PersistenceError(f"Invalid amount: {amount!r}") from e
        if not amount.is_finite() or amount <= 0:
            raise PersistenceError(f"Transaction amount must be positive, got {amount}")
        if not category:
            raise PersistenceError("Transaction category is required")

        date_str = date.isoformat() if hasattr(date, "isoformat") else str(date)

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO transactions
                (owner_id, type, amount, currency, date, category, merchant, description,
                 source, record_id, import_job_id, source_key, meta, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_key) DO NOTHING
            """,
                (
                    str(owner_id),
                    TransactionType(tx_type).value,
                    str(amount),
                    currency,
                    date_str,
                    category,
                    merchant,
                    description,
                    TransactionSource(source).value,
                    record_id,
                    import_job_id,
                    source_key,
                    json.dumps(meta or {}, default=str),
                    _utcnow(),
                ),
            )
            if cursor.rowcount == 0:
                return None
            return cursor.lastrowid

    def get_transaction(self, transaction_id: int) -> LedgerTransaction | None:
        """Get transaction by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
            return LedgerTransaction.from_row(row) if row else None

    def list_transactions(
        self,
        owner_id: str | None = None,
        record_id: int | None = None,
        import_job_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> list[LedgerTransaction]:
        """List transactions matching all given filters, ordered by date then ID."""
        clauses: list[str] = []
        params: list[Any] = []
        if owner_id is not None:
            clauses.append("owner_id = ?")
            params.append(str(owner_id))
        if record_id is not None:
            clauses.append("record_id = ?")
            params.append(record_id)
        if import_job_id is not None:
            clauses.append("import_job_id = ?")
            params.append(import_job_id)
        if start:
            clauses.append("date >= ?")
            params.append(start)
        if end:
            clauses.append("date <= ?")
            params.append(end)

        query = "SELECT * FROM transactions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date ASC, id ASC"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [LedgerTransaction.from_row(row) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        """Get pipeline statistics."""
        with self._transaction() as conn:
            record_counts = {
                row["status"]: row["n"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) AS n FROM ingestion_records GROUP BY status"
                )
            }
            import_counts = {
                row["status"]: row["n"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) AS n FROM import_jobs GROUP BY status"
                )
            }
            source_counts = {
                row["source"]: row["n"]
                for row in conn.execute(
                    "SELECT source, COUNT(*) AS n FROM transactions GROUP BY source"
                )
            }

        return {
            "records_total": sum(record_counts.values()),
            "records_done": record_counts.get(RecordStatus.DONE.value, 0),
            "records_error": record_counts.get(RecordStatus.ERROR.value, 0),
            "records_pending": record_counts.get(RecordStatus.UPLOADED.value, 0)
            + record_counts.get(RecordStatus.PROCESSING.value, 0),
            "imports_total": sum(import_counts.values()),
            "imports_finished": import_counts.get(ImportJobStatus.FINISHED.value, 0),
            "imports_failed": import_counts.get(ImportJobStatus.FAILED.value, 0),
            "transactions_total": sum(source_counts.values()),
            "transactions_ocr": source_counts.get(TransactionSource.OCR.value, 0),
            "transactions_import": source_counts.get(TransactionSource.IMPORT.value, 0),
        }
