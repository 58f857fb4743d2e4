"""Test fixtures and utilities."""

import io
from pathlib import Path

import pytest

# Sample OCR text for testing
SAMPLE_RECEIPT_TEXT = """
FRESH MART SUPERMARKET
123 Main Street
Springfield
Date: 03/14/2024

Milk 2L                 3.49
Bread                   2.99
Eggs 12ct               4.25

Subtotal               10.73
Tax                     0.86
TOTAL:                $11.59

Thank you for shopping!
"""

SAMPLE_STATEMENT_TEXT = """
ACME BANK STATEMENT
Account 0012-3456
Date Description Amount Balance
01/02/2024 PAYROLL ACME CORP SALARY 2,500.00 3,000.00
01/03/2024 FRESH MART GROCERY -45.67 2,954.33
01/05/2024 CITY RENT PAYMENT DEBIT 1,200.00 1,754.33
01/07/2024 SHELL GAS STATION -38.20 1,716.13
13/45/2024 BROKEN ROW 10.00
01/09/2024 ZERO ROW 0.00
"""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pdf(lines: list[str]) -> bytes:
    """Render lines into a PDF with a real text layer; a form-feed line starts a new page."""
    from reportlab.lib.pagesizes import letter
    from reportlab.pdfgen import canvas

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    y = 750
    for line in lines:
        if line == "\f":
            pdf.showPage()
            y = 750
            continue
        pdf.drawString(40, y, line)
        y -= 16
    pdf.save()
    return buffer.getvalue()


def make_png(size: tuple[int, int] = (200, 80)) -> bytes:
    """A small white PNG image."""
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_receipt_text() -> str:
    """Sample grocery receipt OCR text."""
    return SAMPLE_RECEIPT_TEXT


@pytest.fixture
def sample_statement_text() -> str:
    """Sample bank statement text layer."""
    return SAMPLE_STATEMENT_TEXT


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def pdf_factory():
    """Callable rendering text lines into PDF bytes."""
    return make_pdf
