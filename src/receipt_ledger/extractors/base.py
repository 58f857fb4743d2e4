"""
Base extractor interface and common types.
"""

import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ExtractionError(Exception):
    """Raised when a document cannot be turned into text.

    Covers corrupt files, unsupported media types and engine failures.
    Never retried by the extractor itself; the job scheduler retries at
    the job level.
    """

    pass


class MediaKind(str, Enum):
    """Document variants the pipeline can read."""

    IMAGE = "image"
    PDF = "pdf"


PDF_MEDIA_TYPE = "application/pdf"

# Declared types that carry no information about the content
GENERIC_MEDIA_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def classify_media(media_type: str | None, filename: str | None = None) -> MediaKind:
    """
    Map a declared media type to a MediaKind.

    The filename extension is only consulted when the declared type is
    missing or generic.

    Raises:
        ExtractionError: If the media type is not an image or PDF
    """
    declared = (media_type or "").split(";")[0].strip().lower()

    if declared in GENERIC_MEDIA_TYPES and filename:
        guessed, _ = mimetypes.guess_type(filename)
        declared = (guessed or "").lower()

    if declared == PDF_MEDIA_TYPE:
        return MediaKind.PDF
    if declared.startswith("image/"):
        return MediaKind.IMAGE

    raise ExtractionError(f"Unsupported media type: {media_type or 'unknown'}")


@dataclass
class ExtractedText:
    """Plain text recovered from a document."""

    text: str
    confidence: float  # 0.0 - 1.0, heuristic, not a calibrated probability
    kind: MediaKind
    pages: int = 1


class BaseTextExtractor(ABC):
    """
    Base class for text extraction engines.

    Each engine handles exactly one MediaKind.
    """

    @property
    @abstractmethod
    def kind(self) -> MediaKind:
        """Media variant handled by this engine."""
        pass

    @abstractmethod
    def extract(self, buffer: bytes) -> ExtractedText:
        """
        Turn raw document bytes into text.

        Args:
            buffer: Raw file bytes

        Returns:
            ExtractedText with text and confidence

        Raises:
            ExtractionError: If the engine fails
        """
        pass
