"""Derived, read-only projections over transactions: filter, sort, summarize.

Nothing here mutates a store. Inputs are any iterable of
:class:`~statement_analyzer.models.Transaction`; outputs are new lists.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal

from .models import UNCATEGORIZED, Transaction

ALL_CATEGORIES = "all"

type SortKey = Literal["date", "description", "amount", "type", "category"]


def _parse_bound(raw: str | float | None) -> float | None:
    """Parse an amount bound; blank or unparsable input means "no bound"."""

    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    s = raw.strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    return v if math.isfinite(v) else None


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    """Filter criteria; every field defaults to "match everything".

    - ``query``: case-insensitive substring of the description.
    - ``category``: exact category name, or ``"all"``.
    - ``start_date``/``end_date``: inclusive ISO date bounds compared as
      strings.
    - ``min_amount``/``max_amount``: inclusive bounds; strings that do not
      parse as numbers are ignored.
    """

    query: str = ""
    category: str = ALL_CATEGORIES
    start_date: str = ""
    end_date: str = ""
    min_amount: str | float | None = None
    max_amount: str | float | None = None

    @property
    def is_empty(self) -> bool:
        return self == TransactionFilter()

    def matches(self, tx: Transaction) -> bool:
        if self.query and self.query.casefold() not in tx.description.casefold():
            return False
        if self.category != ALL_CATEGORIES and tx.category != self.category:
            return False
        if self.start_date and tx.date < self.start_date:
            return False
        if self.end_date and tx.date > self.end_date:
            return False
        lo = _parse_bound(self.min_amount)
        if lo is not None and tx.amount < lo:
            return False
        hi = _parse_bound(self.max_amount)
        if hi is not None and tx.amount > hi:
            return False
        return True


def filter_transactions(
    transactions: Iterable[Transaction], criteria: TransactionFilter | None = None
) -> list[Transaction]:
    if criteria is None or criteria.is_empty:
        return list(transactions)
    return [tx for tx in transactions if criteria.matches(tx)]


def sort_transactions(
    transactions: Iterable[Transaction], key: SortKey = "date", *, descending: bool = False
) -> list[Transaction]:
    """Return a stable sorted copy; ties keep their original relative order."""

    def _key(tx: Transaction) -> str | float:
        value = getattr(tx, key)
        return value.casefold() if isinstance(value, str) and key != "date" else value

    return sorted(transactions, key=_key, reverse=descending)


@dataclass(frozen=True, slots=True)
class Summary:
    total_debits: float
    total_credits: float
    net_flow: float
    # (category, total debit amount), largest first
    spending_by_category: tuple[tuple[str, float], ...]

    def share_of_spending(self) -> Mapping[str, float]:
        """Percentage of total debits per category (empty when there are none)."""

        if self.total_debits <= 0:
            return {}
        return {
            name: amount / self.total_debits * 100.0 for name, amount in self.spending_by_category
        }


def summarize(transactions: Iterable[Transaction]) -> Summary:
    debits = 0.0
    credits = 0.0
    by_category: dict[str, float] = {}
    for tx in transactions:
        if tx.type == "credit":
            credits += tx.amount
            continue
        debits += tx.amount
        name = tx.category or UNCATEGORIZED
        by_category[name] = by_category.get(name, 0.0) + tx.amount

    spending = tuple(sorted(by_category.items(), key=lambda kv: kv[1], reverse=True))
    return Summary(
        total_debits=debits,
        total_credits=credits,
        net_flow=credits - debits,
        spending_by_category=spending,
    )


__all__ = [
    "ALL_CATEGORIES",
    "SortKey",
    "Summary",
    "TransactionFilter",
    "filter_transactions",
    "sort_transactions",
    "summarize",
]
