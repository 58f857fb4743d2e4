"""
Text extractor router - classifies the media once and dispatches to an engine.
"""

import logging

from ..config import OCRConfig
from .base import BaseTextExtractor, ExtractedText, ExtractionError, MediaKind, classify_media
from .ocr_extractor import ImageOCRExtractor
from .pdf_extractor import PDFTextExtractor

logger = logging.getLogger(__name__)


class TextExtractor:
    """
    Converts a document buffer plus its declared media type into text.

    Routes by MediaKind:
    1. IMAGE - OCR engine, engine-reported confidence
    2. PDF - text layer reader, fixed confidence
    """

    def __init__(self, engines: list[BaseTextExtractor] | None = None):
        """Initialize with default engines unless explicit ones are given."""
        if engines is None:
            engines = [ImageOCRExtractor(), PDFTextExtractor()]
        self.engines: dict[MediaKind, BaseTextExtractor] = {e.kind: e for e in engines}

    @classmethod
    def from_config(cls, ocr: OCRConfig) -> "TextExtractor":
        """Build the default engines from OCR settings."""
        return cls(
            engines=[
                ImageOCRExtractor(
                    language=ocr.language,
                    tesseract_cmd=ocr.tesseract_cmd,
                    default_confidence=ocr.default_confidence,
                ),
                PDFTextExtractor(confidence=ocr.pdf_confidence, max_pages=ocr.pdf_max_pages),
            ]
        )

    def extract(
        self, buffer: bytes, media_type: str | None, filename: str | None = None
    ) -> ExtractedText:
        """
        Extract text from a document.

        Args:
            buffer: Raw file bytes
            media_type: Declared media type (e.g. image/png, application/pdf)
            filename: Original filename, used when media_type is missing

        Raises:
            ExtractionError: On unsupported media or engine failure
        """
        if not buffer:
            raise ExtractionError("Document is empty")

        kind = classify_media(media_type, filename)
        engine = self.engines.get(kind)
        if engine is None:
            raise ExtractionError(f"No extractor configured for {kind.value} documents")

        result = engine.extract(buffer)
        logger.info(
            f"Extracted {len(result.text)} chars from {kind.value} "
            f"(confidence {result.confidence:.2f})"
        )
        return result
