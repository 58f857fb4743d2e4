"""
Heuristic parsers for extracted document text.

Provides:
- FieldParser: amount/date/merchant/category from a single receipt
- TableParser: transaction rows from a bank statement
- Ordered rule tables (rules, categories) used by both
"""

from .categories import DEFAULT_CATEGORY, RECEIPT_CATEGORIES, STATEMENT_CATEGORIES
from .field_parser import FieldParser, ParsedFields, parse_receipt_text
from .rules import AMOUNT_RULES, DATE_RULES, AmountRule, DateRule
from .table_parser import StatementRow, TableParser, parse_table

__all__ = [
    "FieldParser",
    "ParsedFields",
    "parse_receipt_text",
    "TableParser",
    "StatementRow",
    "parse_table",
    "AmountRule",
    "DateRule",
    "AMOUNT_RULES",
    "DATE_RULES",
    "DEFAULT_CATEGORY",
    "RECEIPT_CATEGORIES",
    "STATEMENT_CATEGORIES",
]
