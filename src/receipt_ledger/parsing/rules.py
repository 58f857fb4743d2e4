"""
Pattern rules for heuristic field recovery.

Each rule is a named, compiled pattern plus the logic turning its first
usable match into a value. Rule lists are ordered; callers take the first
rule that yields a value.
"""

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

# A money amount with exactly two decimals, optionally with thousands commas.
# Not preceded by a digit/separator and not followed by a digit, so "12.345"
# and "1.2.34" are not read as amounts.
AMOUNT = r"(?<![\d.,])(\d{1,3}(?:,\d{3})+\.\d{2}|\d+\.\d{2})(?!\d)"


def parse_decimal(value: str) -> Decimal | None:
    """Parse '1,234.56' / '$12.00' / '-4.50' into a Decimal; None if unparseable."""
    cleaned = re.sub(r"[$,\s]", "", value or "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def widen_year(year: str) -> int | None:
    """Widen two-digit years to 20YY; reject anything that is not 2 or 4 digits."""
    if len(year) == 2:
        return 2000 + int(year)
    if len(year) == 4:
        return int(year)
    return None


def build_date(year: str, month: str, day: str) -> date | None:
    """Build a calendar date, or None if the parts do not form one."""
    full_year = widen_year(year)
    if full_year is None:
        return None
    try:
        return date(full_year, int(month), int(day))
    except ValueError:
        return None


@dataclass(frozen=True)
class AmountRule:
    """Amount pattern; group 1 holds the amount."""

    name: str
    pattern: re.Pattern

    def apply(self, text: str) -> Decimal | None:
        """Value of the first match, if it is a positive amount."""
        match = self.pattern.search(text)
        if not match:
            return None
        amount = parse_decimal(match.group(1))
        if amount is None or amount <= 0:
            return None
        return amount


@dataclass(frozen=True)
class DateRule:
    """Date pattern with three groups laid out as ``order`` ("ymd" or "mdy")."""

    name: str
    pattern: re.Pattern
    order: str

    def apply(self, text: str) -> date | None:
        """First match forming a valid calendar date."""
        for match in self.pattern.finditer(text):
            parts = dict(zip(self.order, match.groups()))
            parsed = build_date(parts["y"], parts["m"], parts["d"])
            if parsed is not None:
                return parsed
        return None


AMOUNT_RULES: tuple[AmountRule, ...] = (
    AmountRule("total", re.compile(r"\btotal\b\s*[:\-]?\s*\$?\s*" + AMOUNT, re.IGNORECASE)),
    AmountRule("amount", re.compile(r"\bamount\b\s*[:\-]?\s*\$?\s*" + AMOUNT, re.IGNORECASE)),
    AmountRule("dollar_line_end", re.compile(r"\$\s*" + AMOUNT + r"[ \t]*$", re.MULTILINE)),
    # Only decimal on its line, at the end of the line
    AmountRule(
        "lone_line_end",
        re.compile(r"^(?:(?!\d[\d,]*\.\d{2}).)*" + AMOUNT + r"[ \t]*$", re.MULTILINE),
    ),
    AmountRule("any_decimal", re.compile(AMOUNT)),
)

DATE_RULES: tuple[DateRule, ...] = (
    DateRule("iso", re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)"), "ymd"),
    DateRule("us_slash", re.compile(r"(?<!\d)(\d{2})/(\d{2})/(\d{4})(?!\d)"), "mdy"),
    DateRule("us_dash", re.compile(r"(?<!\d)(\d{2})-(\d{2})-(\d{4})(?!\d)"), "mdy"),
    DateRule("short_slash", re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?!\d)"), "mdy"),
    DateRule("short_dash", re.compile(r"(?<!\d)(\d{1,2})-(\d{1,2})-(\d{4}|\d{2})(?!\d)"), "mdy"),
)
