"""
Receipt ingestion worker.

Turns one stored receipt into parsed fields and, when an amount was found,
one ``ocr`` ledger transaction.

Flow per record:
1. uploaded/error -> processing
2. read the stored file and extract text
3. parse fields, persist text + confidence + fields
4. amount > 0: materialize the transaction, invalidate the owner's cache
5. processing -> done

Any failure marks the record ``error`` and is re-raised so the scheduler
can retry the job.
"""

import logging
from datetime import date
from typing import Any

from ..cache import ResultCache
from ..extractors import TextExtractor
from ..parsing import DEFAULT_CATEGORY, FieldParser
from ..state_store import StateStore, TransactionSource, TransactionType
from .file_storage import FileStorage

logger = logging.getLogger(__name__)


def receipt_source_key(record_id: int) -> str:
    return f"ocr:{record_id}"


class ReceiptIngestionWorker:
    """Processes receipt jobs submitted by the ingestion service."""

    def __init__(
        self,
        store: StateStore,
        extractor: TextExtractor,
        parser: FieldParser,
        cache: ResultCache,
        storage: FileStorage,
        currency: str = "INR",
    ):
        self.store = store
        self.extractor = extractor
        self.parser = parser
        self.cache = cache
        self.storage = storage
        self.currency = currency

    def handle(self, payload: dict[str, Any]) -> int | None:
        """Scheduler entry point: payload carries record_id."""
        return self.run(int(payload["record_id"]))

    def run(self, record_id: int) -> int | None:
        """
        Process one receipt record.

        Returns:
            ID of the created transaction, or None if none was created

        Raises:
            RecordNotFound: If the record does not exist
            ExtractionError, PersistenceError: After the record is marked error
        """
        record = self.store.require_record(record_id)
        self.store.mark_record_processing(record_id)
        logger.info(f"Processing receipt {record_id} ({record.original_name})")

        try:
            if not record.storage_path:
                raise FileNotFoundError(f"Receipt {record_id} has no stored file")
            buffer = self.storage.read(record.storage_path)

            extracted = self.extractor.extract(buffer, record.media_type, record.original_name)
            fields = self.parser.parse(extracted.text)
            self.store.save_record_extraction(
                record_id, extracted.text, extracted.confidence, fields.to_dict()
            )

            tx_id = None
            if fields.amount is not None and fields.amount > 0:
                tx_id = self.store.create_transaction(
                    owner_id=record.owner_id,
                    tx_type=fields.direction or TransactionType.EXPENSE,
                    amount=fields.amount,
                    date=fields.date or date.today(),
                    category=fields.category or DEFAULT_CATEGORY,
                    currency=self.currency,
                    source=TransactionSource.OCR,
                    merchant=fields.merchant,
                    record_id=record_id,
                    source_key=receipt_source_key(record_id),
                    meta={
                        "parsed": fields.to_dict(),
                        "confidence": extracted.confidence,
                        "text_length": len(extracted.text),
                    },
                )
                if tx_id is None:
                    logger.info(f"Receipt {record_id} already materialized; skipping transaction")
                else:
                    logger.info(f"Transaction {tx_id} created from receipt {record_id}")
                    self.cache.invalidate(record.owner_id)
            else:
                logger.info(f"No amount found on receipt {record_id}; no transaction created")

            self.store.mark_record_done(record_id)
            return tx_id

        except Exception as e:
            logger.error(f"Receipt {record_id} failed: {e}")
            try:
                self.store.mark_record_error(record_id, str(e))
            except Exception:
                logger.exception(f"Could not record failure of receipt {record_id}")
            raise
