"""
Keyword category tables.

Tables are checked in order and the first category with a matching keyword
wins, so categories are mutually exclusive by ordering alone. A keyword
matches anywhere in the lower-cased text ("store" matches "superstore").
"""

DEFAULT_CATEGORY = "other"

# Receipts (outbound spend)
RECEIPT_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("groceries", ("grocery", "supermarket", "walmart", "target", "kroger", "safeway")),
    ("food", ("restaurant", "cafe", "coffee", "pizza", "burger", "dining")),
    ("transportation", ("gas", "fuel", "shell", "exxon", "chevron", "bp")),
    ("healthcare", ("pharmacy", "cvs", "walgreens", "medical")),
    ("travel", ("hotel", "motel", "inn", "resort")),
    ("shopping", ("amazon", "ebay", "shop", "store")),
)

# Bank statement rows (both directions)
STATEMENT_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("groceries", ("grocery", "supermarket", "food mart")),
    ("food", ("restaurant", "cafe", "dining")),
    ("transportation", ("gas", "fuel", "gasoline")),
    ("healthcare", ("pharmacy", "medical", "hospital")),
    ("housing", ("rent", "mortgage", "utilities")),
    ("salary", ("salary", "payroll", "wages")),
)


def compile_table(
    table: tuple[tuple[str, tuple[str, ...]], ...],
) -> list[tuple[str, tuple[str, ...]]]:
    """Lower-case every keyword once so lookups compare like with like."""
    return [(category, tuple(kw.lower() for kw in keywords)) for category, keywords in table]


def categorize(text: str, compiled: list[tuple[str, tuple[str, ...]]]) -> str:
    """First category with a keyword contained in the lower-cased text."""
    lowered = (text or "").lower()
    for category, keywords in compiled:
        if any(kw in lowered for kw in keywords):
            return category
    return DEFAULT_CATEGORY
