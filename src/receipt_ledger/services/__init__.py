"""Ingestion services: upload boundary, workers, storage and aggregates."""

from .aggregates import AggregateQueries
from .file_storage import FileStorage
from .import_worker import MAX_IMPORT_ERRORS, ImportIngestionWorker
from .ingestion import IngestionService, Submission, UploadRejected
from .receipt_worker import ReceiptIngestionWorker

__all__ = [
    "IngestionService",
    "Submission",
    "UploadRejected",
    "ReceiptIngestionWorker",
    "ImportIngestionWorker",
    "MAX_IMPORT_ERRORS",
    "FileStorage",
    "AggregateQueries",
]
