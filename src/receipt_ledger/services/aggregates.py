"""
Per-owner aggregate views over the ledger, cached.

Every query checks the ResultCache first under
``<query_name>:<owner_id>:<start>:<end>[:...]`` and stores its result on a
miss. Workers invalidate an owner's entries whenever they add transactions
for that owner.
"""

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any

from ..cache import ResultCache, cache_key
from ..state_store import LedgerTransaction, StateStore, TransactionType

logger = logging.getLogger(__name__)

DATE_INTERVALS = {"day": 10, "month": 7, "year": 4}


def _iso(value: date | str | None) -> str | None:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, date) else str(value)


class AggregateQueries:
    """Cached aggregate queries for one store."""

    def __init__(self, store: StateStore, cache: ResultCache, ttl_seconds: int | None = None):
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def _cached(
        self,
        name: str,
        owner_id: str,
        start: str | None,
        end: str | None,
        extra: tuple,
        compute: Callable[[list[LedgerTransaction]], Any],
    ) -> Any:
        key = cache_key(name, owner_id, start, end, *extra)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return cached

        transactions = self.store.list_transactions(owner_id=owner_id, start=start, end=end)
        result = compute(transactions)
        self.cache.set(key, result, self.ttl_seconds)
        return result

    def summary(
        self, owner_id: str, start: date | str | None = None, end: date | str | None = None
    ) -> dict[str, Any]:
        """Income and expense totals, their counts and the net balance."""

        def compute(transactions: list[LedgerTransaction]) -> dict[str, Any]:
            totals = {t: {"total": Decimal("0"), "count": 0} for t in TransactionType}
            for tx in transactions:
                totals[tx.type]["total"] += tx.amount
                totals[tx.type]["count"] += 1
            income = totals[TransactionType.INCOME]
            expense = totals[TransactionType.EXPENSE]
            return {
                "income": income,
                "expense": expense,
                "net": income["total"] - expense["total"],
                "count": len(transactions),
            }

        return self._cached("summary", owner_id, _iso(start), _iso(end), (), compute)

    def expenses_by_category(
        self, owner_id: str, start: date | str | None = None, end: date | str | None = None
    ) -> list[dict[str, Any]]:
        """Expense totals per category, largest first."""

        def compute(transactions: list[LedgerTransaction]) -> list[dict[str, Any]]:
            groups = _group(
                (tx for tx in transactions if tx.type is TransactionType.EXPENSE),
                key=lambda tx: tx.category,
            )
            rows = [{"category": k, **v} for k, v in groups.items()]
            return sorted(rows, key=lambda r: (-r["total"], r["category"]))

        return self._cached(
            "expenses-by-category", owner_id, _iso(start), _iso(end), (), compute
        )

    def expenses_by_date(
        self,
        owner_id: str,
        start: date | str | None = None,
        end: date | str | None = None,
        interval: str = "day",
    ) -> list[dict[str, Any]]:
        """
        Expense totals bucketed by day, month or year, oldest first.

        Raises:
            ValueError: On an unknown interval
        """
        if interval not in DATE_INTERVALS:
            raise ValueError(
                f"Unknown interval {interval!r}; expected one of {list(DATE_INTERVALS)}"
            )
        width = DATE_INTERVALS[interval]

        def compute(transactions: list[LedgerTransaction]) -> list[dict[str, Any]]:
            groups = _group(
                (tx for tx in transactions if tx.type is TransactionType.EXPENSE),
                key=lambda tx: tx.date[:width],
            )
            return [{"period": k, **v} for k, v in sorted(groups.items())]

        return self._cached(
            "expenses-by-date", owner_id, _iso(start), _iso(end), (interval,), compute
        )

    def top_merchants(
        self,
        owner_id: str,
        start: date | str | None = None,
        end: date | str | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Merchants ranked by total amount."""

        def compute(transactions: list[LedgerTransaction]) -> list[dict[str, Any]]:
            groups = _group(
                (tx for tx in transactions if tx.merchant),
                key=lambda tx: tx.merchant,
            )
            rows = [{"merchant": k, **v} for k, v in groups.items()]
            rows.sort(key=lambda r: (-r["total"], r["merchant"]))
            return rows[:limit]

        return self._cached("top-merchants", owner_id, _iso(start), _iso(end), (limit,), compute)


def _group(transactions, key) -> dict[str, dict[str, Any]]:
    groups: dict[str, dict[str, Any]] = defaultdict(lambda: {"total": Decimal("0"), "count": 0})
    for tx in transactions:
        bucket = groups[key(tx)]
        bucket["total"] += tx.amount
        bucket["count"] += 1
    return dict(groups)
