"""
Document text extractors.

Provides:
- TextExtractor: Classifies media once and routes to an engine
- ImageOCRExtractor: Tesseract OCR for receipt photos and scans
- PDFTextExtractor: Text layer reader for PDF receipts and statements
- Base classes for custom engines
"""

from .base import (
    BaseTextExtractor,
    ExtractedText,
    ExtractionError,
    PDF_MEDIA_TYPE,
    MediaKind,
    classify_media,
)
from .ocr_extractor import ImageOCRExtractor
from .pdf_extractor import PDFTextExtractor
from .router import TextExtractor

__all__ = [
    "TextExtractor",
    "ImageOCRExtractor",
    "PDFTextExtractor",
    "BaseTextExtractor",
    "ExtractedText",
    "ExtractionError",
    "MediaKind",
    "PDF_MEDIA_TYPE",
    "classify_media",
]
