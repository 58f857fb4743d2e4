"""
Bank statement table parser.

Scans statement text once with a single composite pattern matching
``<date> <description> <amount> [balance] [DR|CR]`` lines and yields one row
per match. Amounts may be whole numbers; a balance column is only recognized
after an amount with cents. Rows with an invalid date or a non-positive amount
are skipped.
"""

import datetime
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from decimal import Decimal

from ..state_store import TransactionType
from .categories import STATEMENT_CATEGORIES, categorize, compile_table
from .rules import build_date, parse_decimal

logger = logging.getLogger(__name__)

ROW_PATTERN = re.compile(
    r"^[ \t]*(?P<date>\d{1,2}[/.\-]\d{1,2}[/.\-](?:\d{4}|\d{2}))"
    r"[ \t]+(?P<description>\S.*?)"
    r"[ \t]+(?P<amount>-?\$?-?\d{1,3}(?:,?\d{3})*(?:\.\d{2})?)"
    r"(?:(?<=\.\d{2})[ \t]+(?P<balance>-?\$?-?[\d,]+\.\d{2}))?"
    r"(?:[ \t]+(?P<marker>(?i:dr|cr))\.?)?"
    r"[ \t]*$",
    re.MULTILINE,
)

DATE_SEPARATORS = re.compile(r"[/.\-]")
DEBIT_WORD = re.compile(r"\bdebit\b")


@dataclass
class StatementRow:
    """One transaction candidate recovered from a statement."""

    date: datetime.date
    description: str
    amount: Decimal
    direction: TransactionType
    category: str
    line: str = ""


class TableParser:
    """Parses statement text into transaction candidates."""

    def __init__(self, categories=STATEMENT_CATEGORIES):
        self._categories = compile_table(categories)

    def parse(self, text: str) -> Iterator[StatementRow]:
        """
        Yield statement rows lazily.

        The returned iterator scans the text once and cannot be restarted.
        """
        for match in ROW_PATTERN.finditer(text or ""):
            row = self._row_from_match(match)
            if row is not None:
                yield row

    def _row_from_match(self, match: re.Match) -> StatementRow | None:
        month, day, year = DATE_SEPARATORS.split(match.group("date"))
        row_date = build_date(year, month, day)
        if row_date is None:
            logger.debug(f"Skipping statement line with invalid date: {match.group(0)!r}")
            return None

        amount_text = match.group("amount")
        amount = parse_decimal(amount_text.replace("-", ""))
        if amount is None or amount <= 0:
            logger.debug(f"Skipping statement line with non-positive amount: {match.group(0)!r}")
            return None

        description = match.group("description").strip()
        marker = (match.group("marker") or "").lower()
        is_debit = (
            "-" in amount_text
            or marker == "dr"
            or DEBIT_WORD.search(description.lower()) is not None
        )

        return StatementRow(
            date=row_date,
            description=description,
            amount=amount,
            direction=TransactionType.EXPENSE if is_debit else TransactionType.INCOME,
            category=categorize(description, self._categories),
            line=match.group(0).strip(),
        )


_default_parser = TableParser()


def parse_table(text: str) -> Iterator[StatementRow]:
    """Parse statement text with the default category table."""
    return _default_parser.parse(text)
