"""
Statement import worker.

Stores the uploaded statement PDF, extracts its text, parses the
transaction table and materializes each row as an ``import`` transaction.
A row that fails to persist is counted and skipped; the batch carries on.
"""

import logging
from typing import Any

from ..cache import ResultCache
from ..extractors import PDF_MEDIA_TYPE, TextExtractor
from ..parsing import TableParser
from ..state_store import RecordStatus, StateStore, TransactionSource
from .file_storage import FileStorage

logger = logging.getLogger(__name__)

MAX_IMPORT_ERRORS = 50
IMPORT_SUBDIR = "imports"
DEFAULT_IMPORT_NAME = "import.pdf"


def import_source_key(job_id: int, row_index: int) -> str:
    return f"import:{job_id}:{row_index}"


class ImportIngestionWorker:
    """Processes statement import jobs."""

    def __init__(
        self,
        store: StateStore,
        extractor: TextExtractor,
        table_parser: TableParser,
        cache: ResultCache,
        storage: FileStorage,
        currency: str = "INR",
    ):
        self.store = store
        self.extractor = extractor
        self.table_parser = table_parser
        self.cache = cache
        self.storage = storage
        self.currency = currency

    def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Scheduler entry point."""
        return self.run(
            job_id=int(payload["job_id"]),
            owner_id=payload["owner_id"],
            file_bytes=payload["file_bytes"],
            original_name=payload.get("original_name"),
        )

    def run(
        self,
        job_id: int,
        owner_id: str,
        file_bytes: bytes,
        original_name: str | None = None,
    ) -> dict[str, Any]:
        """
        Import one statement.

        Returns:
            Summary dict: imported, failed, duplicates, errors (at most 50)

        Raises:
            Any error outside the per-row loop, after the job is marked failed
        """
        name = original_name or DEFAULT_IMPORT_NAME
        summary: dict[str, Any] = {"imported": 0, "failed": 0, "duplicates": 0, "errors": []}
        logger.info(f"Import job {job_id} starting for {owner_id} ({name})")

        try:
            self.store.mark_import_running(job_id)
            file_record_id = self._store_statement(job_id, owner_id, file_bytes, name)

            extracted = self.extractor.extract(file_bytes, PDF_MEDIA_TYPE, name)

            for index, row in enumerate(self.table_parser.parse(extracted.text)):
                try:
                    tx_id = self.store.create_transaction(
                        owner_id=owner_id,
                        tx_type=row.direction,
                        amount=row.amount,
                        date=row.date,
                        category=row.category,
                        currency=self.currency,
                        source=TransactionSource.IMPORT,
                        description=row.description,
                        record_id=file_record_id,
                        import_job_id=job_id,
                        source_key=import_source_key(job_id, index),
                        meta={"parsed_from": "pdf", "line": row.line},
                    )
                except Exception as e:
                    summary["failed"] += 1
                    if len(summary["errors"]) < MAX_IMPORT_ERRORS:
                        summary["errors"].append(f"Row {index + 1}: {e}")
                    logger.warning(f"Import job {job_id} row {index + 1} failed: {e}")
                    continue

                if tx_id is None:
                    summary["duplicates"] += 1
                else:
                    summary["imported"] += 1

            self.store.finish_import_job(job_id, summary)

        except Exception as e:
            logger.exception(f"Import job {job_id} failed")
            errors = summary["errors"][: MAX_IMPORT_ERRORS - 1] + [str(e)]
            try:
                self.store.fail_import_job(job_id, str(e), {**summary, "errors": errors})
            except Exception:
                logger.exception(f"Could not record failure of import job {job_id}")
            if summary["imported"]:
                self.cache.invalidate(owner_id)
            raise

        self.cache.invalidate(owner_id)
        logger.info(
            f"Import job {job_id} finished: imported={summary['imported']} "
            f"failed={summary['failed']} duplicates={summary['duplicates']}"
        )
        return summary

    def _store_statement(self, job_id: int, owner_id: str, file_bytes: bytes, name: str) -> int:
        """Save the PDF and register it as a done ingestion record, once per job."""
        job = self.store.require_import_job(job_id)
        if job.file_record_id is not None:
            return job.file_record_id

        path = self.storage.save(owner_id, name, file_bytes, subdir=IMPORT_SUBDIR)
        record_id = self.store.create_record(
            owner_id=owner_id,
            original_name=name,
            media_type=PDF_MEDIA_TYPE,
            storage_path=path,
            size_bytes=len(file_bytes),
            status=RecordStatus.DONE,
        )
        self.store.attach_import_file(job_id, record_id)
        return record_id
