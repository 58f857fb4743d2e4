"""
Ingestion service - the upload boundary of the pipeline.

Validates an upload, persists the raw file and its status record, submits
the job and returns immediately. The scheduler runs the matching worker
later; exhaustion of a job's retries is written back to the owning record
or import job.
"""

import logging
from dataclasses import dataclass
from typing import Any

from ..cache import ResultCache
from ..config import Config
from ..extractors import ExtractionError, MediaKind, TextExtractor, classify_media
from ..parsing import FieldParser, TableParser
from ..scheduler import Job, JobExhausted, JobHandle, JobKind, JobScheduler
from ..state_store import RecordStatus, StateStore
from .aggregates import AggregateQueries
from .file_storage import FileStorage
from .import_worker import ImportIngestionWorker
from .receipt_worker import ReceiptIngestionWorker

logger = logging.getLogger(__name__)

RECEIPT_SUBDIR = "receipts"


class UploadRejected(Exception):
    """Raised when an upload fails the boundary checks. Nothing is persisted."""

    pass


@dataclass
class Submission:
    """Result of an accepted upload."""

    id: int
    job: JobHandle


class IngestionService:
    """
    Accepts uploads and wires them to the background workers.

    Usage:
        service = IngestionService.from_config(config)
        service.start()
        submission = service.submit_receipt("alice", "lunch.jpg", data, "image/jpeg")
        service.receipt_status(submission.id)
    """

    def __init__(
        self,
        store: StateStore,
        scheduler: JobScheduler,
        storage: FileStorage,
        receipt_worker: ReceiptIngestionWorker,
        import_worker: ImportIngestionWorker,
        receipt_max_bytes: int,
        import_max_bytes: int,
        aggregates: AggregateQueries | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.storage = storage
        self.receipt_max_bytes = receipt_max_bytes
        self.import_max_bytes = import_max_bytes
        self.aggregates = aggregates

        self.scheduler.register(JobKind.RECEIPT, receipt_worker.handle)
        self.scheduler.register(JobKind.IMPORT, import_worker.handle)
        self.scheduler.on_exhausted = self._on_exhausted

    @classmethod
    def from_config(cls, config: Config) -> "IngestionService":
        """Build the whole pipeline from configuration."""
        store = StateStore(config.state_db_path)
        storage = FileStorage(config.uploads.storage_dir)
        cache = ResultCache(default_ttl_seconds=config.cache.ttl_seconds)
        extractor = TextExtractor.from_config(config.ocr)

        receipt_worker = ReceiptIngestionWorker(
            store, extractor, FieldParser(), cache, storage, config.default_currency
        )
        import_worker = ImportIngestionWorker(
            store, extractor, TableParser(), cache, storage, config.default_currency
        )

        return cls(
            store=store,
            scheduler=JobScheduler.from_config(config.scheduler),
            storage=storage,
            receipt_worker=receipt_worker,
            import_worker=import_worker,
            receipt_max_bytes=config.uploads.receipt_max_bytes,
            import_max_bytes=config.uploads.import_max_bytes,
            aggregates=AggregateQueries(store, cache, config.cache.ttl_seconds),
        )

    def _check_upload(
        self, data: bytes, media_type: str | None, original_name: str, max_bytes: int
    ) -> MediaKind:
        if not data:
            raise UploadRejected("No file uploaded")
        if len(data) > max_bytes:
            raise UploadRejected(f"File too large: {len(data)} bytes (limit {max_bytes})")
        try:
            return classify_media(media_type, original_name)
        except ExtractionError as e:
            raise UploadRejected(str(e)) from e

    def submit_receipt(
        self,
        owner_id: str,
        original_name: str,
        data: bytes,
        media_type: str | None = None,
    ) -> Submission:
        """
        Accept a receipt image or PDF.

        Raises:
            UploadRejected: Empty, oversized or unsupported upload
        """
        self._check_upload(data, media_type, original_name, self.receipt_max_bytes)

        path = self.storage.save(owner_id, original_name, data, subdir=RECEIPT_SUBDIR)
        record_id = self.store.create_record(
            owner_id=owner_id,
            original_name=original_name,
            media_type=media_type,
            storage_path=path,
            size_bytes=len(data),
        )
        handle = self.scheduler.submit(
            JobKind.RECEIPT,
            {"record_id": record_id, "owner_id": owner_id, "storage_path": str(path)},
        )
        logger.info(f"Receipt {record_id} accepted for {owner_id} as {handle.id}")
        return Submission(id=record_id, job=handle)

    def submit_import(
        self,
        owner_id: str,
        original_name: str,
        data: bytes,
        media_type: str | None = None,
    ) -> Submission:
        """
        Accept a PDF bank statement.

        Raises:
            UploadRejected: Empty, oversized or non-PDF upload
        """
        kind = self._check_upload(data, media_type, original_name, self.import_max_bytes)
        if kind is not MediaKind.PDF:
            raise UploadRejected("Statement imports must be PDF files")

        job_id = self.store.create_import_job(owner_id, original_name)
        handle = self.scheduler.submit(
            JobKind.IMPORT,
            {
                "job_id": job_id,
                "owner_id": owner_id,
                "file_bytes": data,
                "original_name": original_name,
            },
        )
        logger.info(f"Import job {job_id} accepted for {owner_id} as {handle.id}")
        return Submission(id=job_id, job=handle)

    def requeue_unfinished(self, include_errors: bool = False) -> list[Submission]:
        """
        Resubmit receipts whose job was lost with a previous process.

        Records still uploaded or processing are requeued; failed ones too
        when include_errors is set. Statement imports carry their bytes in
        the job payload and cannot be recovered this way.
        """
        statuses = [RecordStatus.UPLOADED, RecordStatus.PROCESSING]
        if include_errors:
            statuses.append(RecordStatus.ERROR)

        submissions = []
        for record in self.store.list_records_by_status(*statuses):
            if not record.storage_path:
                continue
            handle = self.scheduler.submit(
                JobKind.RECEIPT,
                {
                    "record_id": record.id,
                    "owner_id": record.owner_id,
                    "storage_path": record.storage_path,
                },
            )
            submissions.append(Submission(id=record.id, job=handle))

        if submissions:
            logger.info(f"Requeued {len(submissions)} unfinished receipt(s)")
        return submissions

    def _on_exhausted(self, job: Job, last_error: BaseException) -> None:
        message = str(JobExhausted(job, last_error))
        if job.kind is JobKind.RECEIPT:
            self.store.mark_record_error(int(job.payload["record_id"]), message)
        elif job.kind is JobKind.IMPORT:
            job_id = int(job.payload["job_id"])
            current = self.store.get_import_job(job_id)
            self.store.fail_import_job(job_id, message, current.summary if current else None)

    def receipt_status(self, record_id: int) -> dict[str, Any]:
        """
        Processing status of a receipt.

        Raises:
            RecordNotFound: If the record does not exist
        """
        record = self.store.require_record(record_id)
        return {
            "id": record.id,
            "status": record.status.value,
            "original_name": record.original_name,
            "confidence": record.confidence,
            "parsed_fields": record.parsed_fields,
            "error_message": record.error_message,
        }

    def import_status(self, job_id: int) -> dict[str, Any]:
        """
        Processing status of a statement import.

        Raises:
            RecordNotFound: If the import job does not exist
        """
        job = self.store.require_import_job(job_id)
        return {
            "id": job.id,
            "status": job.status.value,
            "original_name": job.original_name,
            "file_record_id": job.file_record_id,
            "summary": job.summary,
            "error_message": job.error_message,
        }

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def drain(self, timeout: float | None = None) -> bool:
        """Run queued jobs in the calling thread until the queue is empty."""
        return self.scheduler.run_until_idle(timeout)
