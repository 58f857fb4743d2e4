"""
Image OCR extractor.

Runs Tesseract over a photographed or scanned receipt and rebuilds the text
line by line from the engine's word boxes, so a single OCR pass yields both
the text and its word-level confidence.
"""

import io
import logging

import pytesseract
from PIL import Image, ImageOps, UnidentifiedImageError
from pytesseract import Output

from .base import BaseTextExtractor, ExtractedText, ExtractionError, MediaKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.85

# Uniform block of text; receipts are a single column
TESSERACT_CONFIG = "--oem 3 --psm 6"


def mean_word_confidence(confidences: list) -> float | None:
    """
    Average Tesseract word confidences (0-100) into a 0.0-1.0 score.

    Tesseract reports -1 for boxes that are not words; those are ignored.
    Returns None when no word carried a confidence.
    """
    scores = []
    for value in confidences:
        try:
            score = float(value)
        except (TypeError, ValueError):
            continue
        if score >= 0:
            scores.append(score)

    if not scores:
        return None
    return round(sum(scores) / len(scores) / 100.0, 4)


def rebuild_lines(data: dict) -> str:
    """Join OCR word boxes back into newline-separated text lines."""
    lines: dict[tuple, list[str]] = {}
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)

    return "\n".join(" ".join(words) for _, words in sorted(lines.items()))


class ImageOCRExtractor(BaseTextExtractor):
    """Extract text from images with Tesseract."""

    def __init__(
        self,
        language: str = "eng",
        tesseract_cmd: str | None = None,
        default_confidence: float = DEFAULT_CONFIDENCE,
    ):
        self.language = language
        self.default_confidence = default_confidence
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    @property
    def kind(self) -> MediaKind:
        return MediaKind.IMAGE

    def extract(self, buffer: bytes) -> ExtractedText:
        """Run OCR on image bytes."""
        try:
            with Image.open(io.BytesIO(buffer)) as image:
                # Phone photos carry their rotation in EXIF
                prepared = ImageOps.exif_transpose(image).convert("L")
                data = pytesseract.image_to_data(
                    prepared,
                    lang=self.language,
                    config=TESSERACT_CONFIG,
                    output_type=Output.DICT,
                )
        except UnidentifiedImageError as e:
            raise ExtractionError("Failed to extract text from image: unreadable image") from e
        except pytesseract.TesseractNotFoundError as e:
            raise ExtractionError("Failed to extract text from image: tesseract not found") from e
        except (pytesseract.TesseractError, OSError, ValueError) as e:
            raise ExtractionError(f"Failed to extract text from image: {e}") from e

        text = rebuild_lines(data)
        confidence = mean_word_confidence(data.get("conf", []))
        if confidence is None:
            confidence = self.default_confidence

        logger.debug(f"OCR recovered {len(text)} chars (confidence {confidence:.2f})")
        return ExtractedText(text=text, confidence=confidence, kind=self.kind)
