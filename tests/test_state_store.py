"""Tests for state store."""

from datetime import date
from decimal import Decimal

import pytest

from receipt_ledger.state_store import (
    ImportJobStatus,
    PersistenceError,
    RecordNotFound,
    RecordStatus,
    StateStore,
    TransactionSource,
    TransactionType,
)
from receipt_ledger.state_store.migrations import MigrationRunner, get_all_migrations


class TestStateStore:
    """Tests for SQLite state store."""

    @pytest.fixture
    def store(self, temp_db):
        """Create a fresh state store."""
        return StateStore(temp_db)

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            assert "ingestion_records" in table_names
            assert "import_jobs" in table_names
            assert "transactions" in table_names
            assert "migrations" in table_names
        finally:
            conn.close()

    def test_reopen_is_idempotent(self, temp_db):
        StateStore(temp_db)
        StateStore(temp_db)


class TestMigrations:
    """Tests for the migration runner."""

    def test_migrations_discovered(self):
        versions = [m.version for m in get_all_migrations()]
        assert versions == sorted(versions)
        assert 1 in versions

    def test_source_key_index_created(self, temp_db):
        store = StateStore(temp_db)
        conn = store._get_connection()
        try:
            indexes = {row[1] for row in conn.execute("PRAGMA index_list(transactions)")}
            assert "idx_transactions_source_key" in indexes
            assert MigrationRunner(conn).get_pending() == []
        finally:
            conn.close()

    def test_revert_and_reapply(self, temp_db):
        store = StateStore(temp_db)
        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            source_key = next(m for m in get_all_migrations() if m.version == 1)

            runner.revert(source_key)
            indexes = {row[1] for row in conn.execute("PRAGMA index_list(transactions)")}
            assert "idx_transactions_source_key" not in indexes
            assert 1 not in runner.get_applied_versions()

            assert runner.run_pending() == [1]
            assert runner.run_pending() == []
        finally:
            conn.close()


class TestRecordOperations:
    """Tests for ingestion record lifecycle."""

    @pytest.fixture
    def store(self, temp_db):
        return StateStore(temp_db)

    def test_create_and_get(self, store):
        record_id = store.create_record(
            owner_id="alice",
            original_name="lunch.jpg",
            media_type="image/jpeg",
            storage_path="/tmp/lunch.jpg",
            size_bytes=1234,
        )

        record = store.get_record(record_id)
        assert record.owner_id == "alice"
        assert record.status == RecordStatus.UPLOADED
        assert record.storage_path == "/tmp/lunch.jpg"
        assert record.size_bytes == 1234
        assert record.parsed_fields is None
        assert record.created_at

    def test_get_missing(self, store):
        assert store.get_record(999) is None
        with pytest.raises(RecordNotFound):
            store.require_record(999)

    def test_status_flow(self, store):
        record_id = store.create_record("alice", "r.png")

        store.mark_record_processing(record_id)
        assert store.get_record(record_id).status == RecordStatus.PROCESSING
        assert store.get_record(record_id).processing_started_at

        store.save_record_extraction(record_id, "TOTAL 4.50", 0.9, {"amount": "4.50"})
        store.mark_record_done(record_id)

        record = store.get_record(record_id)
        assert record.status == RecordStatus.DONE
        assert record.extracted_text == "TOTAL 4.50"
        assert record.confidence == 0.9
        assert record.parsed_fields == {"amount": "4.50"}
        assert record.processed_at

    def test_error_then_retry(self, store):
        """A retry re-enters processing and clears the error message."""
        record_id = store.create_record("alice", "r.png")
        store.mark_record_processing(record_id)
        store.mark_record_error(record_id, "tesseract not found")

        record = store.get_record(record_id)
        assert record.status == RecordStatus.ERROR
        assert record.error_message == "tesseract not found"

        store.mark_record_processing(record_id)
        record = store.get_record(record_id)
        assert record.status == RecordStatus.PROCESSING
        assert record.error_message is None

    def test_update_missing_record(self, store):
        with pytest.raises(RecordNotFound):
            store.mark_record_done(42)

    def test_list_records(self, store):
        first = store.create_record("alice", "a.png")
        second = store.create_record("alice", "b.png")
        store.create_record("bob", "c.png")
        store.mark_record_done(first)

        assert [r.id for r in store.list_records("alice")] == [second, first]
        assert [r.id for r in store.list_records("alice", RecordStatus.DONE)] == [first]

    def test_list_records_by_status(self, store):
        first = store.create_record("alice", "a.png")
        second = store.create_record("bob", "b.png")
        store.mark_record_processing(second)
        store.mark_record_done(store.create_record("carol", "c.png"))

        pending = store.list_records_by_status(RecordStatus.UPLOADED, RecordStatus.PROCESSING)

        assert [r.id for r in pending] == [first, second]
        assert store.list_records_by_status() == []


class TestImportJobOperations:
    """Tests for import job lifecycle."""

    @pytest.fixture
    def store(self, temp_db):
        return StateStore(temp_db)

    def test_create_queued(self, store):
        job_id = store.create_import_job("alice", "jan.pdf")

        job = store.get_import_job(job_id)
        assert job.status == ImportJobStatus.QUEUED
        assert job.summary == {"imported": 0, "failed": 0, "errors": []}
        assert job.file_record_id is None

    def test_finish(self, store):
        job_id = store.create_import_job("alice", "jan.pdf")
        record_id = store.create_record("alice", "jan.pdf", status=RecordStatus.DONE)

        store.mark_import_running(job_id)
        store.attach_import_file(job_id, record_id)
        store.finish_import_job(job_id, {"imported": 3, "failed": 0, "errors": []})

        job = store.get_import_job(job_id)
        assert job.status == ImportJobStatus.FINISHED
        assert job.file_record_id == record_id
        assert job.summary["imported"] == 3
        assert job.started_at and job.finished_at

    def test_fail_records_error(self, store):
        job_id = store.create_import_job("alice")
        store.fail_import_job(job_id, "not a PDF")

        job = store.get_import_job(job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.error_message == "not a PDF"
        assert job.summary["errors"] == ["not a PDF"]

    def test_missing_job(self, store):
        with pytest.raises(RecordNotFound):
            store.require_import_job(5)
        with pytest.raises(RecordNotFound):
            store.mark_import_running(5)


class TestTransactionOperations:
    """Tests for ledger transactions."""

    @pytest.fixture
    def store(self, temp_db):
        return StateStore(temp_db)

    def test_create_and_get(self, store):
        tx_id = store.create_transaction(
            owner_id="alice",
            tx_type=TransactionType.EXPENSE,
            amount=Decimal("11.59"),
            date=date(2024, 3, 14),
            category="groceries",
            currency="INR",
            source=TransactionSource.OCR,
            merchant="Fresh Mart",
            source_key="ocr:1",
            meta={"confidence": 0.9},
        )

        tx = store.get_transaction(tx_id)
        assert tx.amount == Decimal("11.59")
        assert tx.type == TransactionType.EXPENSE
        assert tx.date == "2024-03-14"
        assert tx.source == TransactionSource.OCR
        assert tx.source_key == "ocr:1"
        assert tx.meta == {"confidence": 0.9}

    def test_duplicate_source_key_skipped(self, store):
        kwargs = dict(
            owner_id="alice",
            tx_type=TransactionType.EXPENSE,
            amount=Decimal("5.00"),
            date="2024-01-01",
            category="food",
            currency="INR",
            source_key="import:1:0",
        )

        assert store.create_transaction(**kwargs) is not None
        assert store.create_transaction(**kwargs) is None
        assert len(store.list_transactions(owner_id="alice")) == 1

    def test_manual_transactions_without_key_never_collide(self, store):
        for _ in range(2):
            store.create_transaction(
                "alice", TransactionType.INCOME, Decimal("1.00"), "2024-01-01", "salary", "INR"
            )
        assert len(store.list_transactions(owner_id="alice")) == 2

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-3.00"), "abc"])
    def test_rejects_non_positive_amount(self, store, amount):
        with pytest.raises(PersistenceError):
            store.create_transaction(
                "alice", TransactionType.EXPENSE, amount, "2024-01-01", "food", "INR"
            )

    def test_requires_category(self, store):
        with pytest.raises(PersistenceError):
            store.create_transaction(
                "alice", TransactionType.EXPENSE, Decimal("1.00"), "2024-01-01", "", "INR"
            )

    def test_list_filters(self, store):
        for day, owner in [(1, "alice"), (15, "alice"), (31, "alice"), (10, "bob")]:
            store.create_transaction(
                owner, TransactionType.EXPENSE, Decimal("2.00"), f"2024-01-{day:02d}", "food", "INR"
            )

        in_range = store.list_transactions(owner_id="alice", start="2024-01-10", end="2024-01-31")
        assert [tx.date for tx in in_range] == ["2024-01-15", "2024-01-31"]
        assert len(store.list_transactions()) == 4

    def test_stats(self, store):
        record_id = store.create_record("alice", "r.png")
        store.mark_record_done(record_id)
        store.create_record("alice", "s.png")
        store.create_transaction(
            "alice",
            TransactionType.EXPENSE,
            Decimal("3.00"),
            "2024-01-01",
            "food",
            "INR",
            source=TransactionSource.OCR,
            record_id=record_id,
            source_key=f"ocr:{record_id}",
        )

        stats = store.get_stats()
        assert stats["records_total"] == 2
        assert stats["records_done"] == 1
        assert stats["records_pending"] == 1
        assert stats["transactions_ocr"] == 1
        assert stats["transactions_import"] == 0
