"""
Receipt field parser.

Recovers amount, date, merchant, category and direction from noisy receipt
text using ordered first-match-wins rules. Absent fields are the normal
low-confidence outcome, never an error.

Rule order:
- Amount: total → amount → $x.xx at line end → lone decimal at line end → any decimal
- Date: YYYY-MM-DD → MM/DD/YYYY → MM-DD-YYYY → 1-2 digit variants (20YY widening)
- Merchant: first qualifying line among the first 5 non-blank lines
- Category: keyword table in priority order, "other" by default
"""

import datetime
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..state_store import TransactionType
from .categories import RECEIPT_CATEGORIES, categorize, compile_table
from .rules import AMOUNT_RULES, DATE_RULES, AmountRule, DateRule

MERCHANT_LINE_LIMIT = 5
MERCHANT_MIN_LENGTH = 3
MERCHANT_MAX_LENGTH = 50

CURRENCY_SYMBOLS = "$€£¥₹"
FULL_DATE = re.compile(r"\d{1,2}[/\-]\d{1,2}[/\-]\d{4}|\d{4}-\d{1,2}-\d{1,2}")
NAME_SHAPE = re.compile(r"^[A-Z][A-Za-z\s&',.\-]*$")
NAME_WORD = re.compile(r"[A-Za-z][A-Za-z&'.\-]*")


def looks_like_name(line: str) -> bool:
    """Starts with a capital and holds only name characters, or is mostly capitalized words."""
    if NAME_SHAPE.match(line):
        return True
    if any(ch.isdigit() for ch in line):
        return False
    words = NAME_WORD.findall(line)
    if not words:
        return False
    capitalized = sum(1 for w in words if w[0].isupper())
    return capitalized * 2 > len(words)


@dataclass
class ParsedFields:
    """Fields recovered from one receipt. Every field is optional."""

    amount: Decimal | None = None
    date: datetime.date | None = None
    merchant: str | None = None
    category: str | None = None
    direction: TransactionType | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""
        return {
            "amount": str(self.amount) if self.amount is not None else None,
            "date": self.date.isoformat() if self.date else None,
            "merchant": self.merchant,
            "category": self.category,
            "direction": self.direction.value if self.direction else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedFields":
        """Inverse of to_dict."""
        return cls(
            amount=Decimal(data["amount"]) if data.get("amount") else None,
            date=datetime.date.fromisoformat(data["date"]) if data.get("date") else None,
            merchant=data.get("merchant"),
            category=data.get("category"),
            direction=TransactionType(data["direction"]) if data.get("direction") else None,
        )


class FieldParser:
    """
    Heuristic receipt field parser.

    Pure and deterministic: the same text always yields the same fields.
    Rule tables can be swapped per instance to extend or test them.
    """

    def __init__(
        self,
        amount_rules: tuple[AmountRule, ...] = AMOUNT_RULES,
        date_rules: tuple[DateRule, ...] = DATE_RULES,
        categories=RECEIPT_CATEGORIES,
        merchant_line_limit: int = MERCHANT_LINE_LIMIT,
    ):
        self.amount_rules = amount_rules
        self.date_rules = date_rules
        self.merchant_line_limit = merchant_line_limit
        self._categories = compile_table(categories)

    def parse(self, text: str) -> ParsedFields:
        """Recover all fields from receipt text."""
        text = text or ""
        return ParsedFields(
            amount=self.parse_amount(text),
            date=self.parse_date(text),
            merchant=self.parse_merchant(text),
            category=self.parse_category(text),
            # Receipts are outbound spend; income receipts are not recognized
            direction=TransactionType.EXPENSE,
        )

    def parse_amount(self, text: str) -> Decimal | None:
        for rule in self.amount_rules:
            amount = rule.apply(text)
            if amount is not None:
                return amount
        return None

    def parse_date(self, text: str) -> datetime.date | None:
        for rule in self.date_rules:
            parsed = rule.apply(text)
            if parsed is not None:
                return parsed
        return None

    def parse_merchant(self, text: str) -> str | None:
        lines = [line.strip() for line in text.splitlines() if line.strip()]

        for line in lines[: self.merchant_line_limit]:
            if not MERCHANT_MIN_LENGTH <= len(line) <= MERCHANT_MAX_LENGTH:
                continue
            if FULL_DATE.search(line):
                continue
            if any(symbol in line for symbol in CURRENCY_SYMBOLS):
                continue
            if looks_like_name(line):
                return line

        return None

    def parse_category(self, text: str) -> str:
        return categorize(text, self._categories)


_default_parser = FieldParser()


def parse_receipt_text(text: str) -> ParsedFields:
    """Parse receipt text with the default rule tables."""
    return _default_parser.parse(text)
