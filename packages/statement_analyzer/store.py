"""The transaction store: ordered, id-unique, owned application state.

All mutation happens through the methods below. Transactions are frozen
dataclasses, so field edits swap in a replacement at the same position;
insertion order is never changed here. Sorting is a view concern (see
:mod:`statement_analyzer.views`).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import replace

from .models import UNCATEGORIZED, Transaction

# Sentinel distinguishing "leave unchanged" from an explicit ``None`` note.
_UNSET: object = object()


class TransactionStore:
    """Mutable collection of accepted transactions.

    Mutators return the number of transactions they changed so callers (and
    tests) can tell a no-op apart from an update.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._items: list[Transaction] = []
        self._index: dict[str, int] = {}
        self.append_batch(transactions)

    # ---- Reads ---------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(tuple(self._items))

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._index

    def get(self, tx_id: str) -> Transaction | None:
        pos = self._index.get(tx_id)
        return None if pos is None else self._items[pos]

    def snapshot(self) -> tuple[Transaction, ...]:
        return tuple(self._items)

    # ---- Mutations -----------------------------------------------------------

    def append_batch(self, transactions: Iterable[Transaction]) -> int:
        """Append ``transactions`` in order as one batch.

        The whole batch is checked before anything is appended; a duplicate
        id (against the store or within the batch) raises ``ValueError`` and
        leaves the store unchanged.
        """

        batch = list(transactions)
        seen: set[str] = set()
        for tx in batch:
            if tx.id in self._index or tx.id in seen:
                raise ValueError(f"duplicate transaction id: {tx.id!r}")
            seen.add(tx.id)

        for tx in batch:
            self._index[tx.id] = len(self._items)
            self._items.append(tx)
        return len(batch)

    def update_field(
        self,
        tx_id: str,
        *,
        category: str | None = None,
        notes: str | None | object = _UNSET,
    ) -> int:
        """Patch ``category`` and/or ``notes`` on one transaction; no-op if absent."""

        pos = self._index.get(tx_id)
        if pos is None:
            return 0
        current = self._items[pos]
        changes: dict[str, object] = {}
        if category is not None and category != current.category:
            changes["category"] = category
        if notes is not _UNSET and notes != current.notes:
            changes["notes"] = notes
        if not changes:
            return 0
        self._items[pos] = replace(current, **changes)
        return 1

    def bulk_update_category(self, tx_ids: Iterable[str], category: str) -> int:
        positions = sorted({self._index[i] for i in tx_ids if i in self._index})
        return self._recategorize(positions, category)

    def reassign_category(self, old_name: str, new_name: str) -> int:
        """Rewrite every transaction in ``old_name`` to ``new_name`` (category rename)."""

        positions = [i for i, tx in enumerate(self._items) if tx.category == old_name]
        return self._recategorize(positions, new_name)

    def clear_category(self, name: str) -> int:
        """Move every transaction in ``name`` back to ``Uncategorized`` (category delete)."""

        return self.reassign_category(name, UNCATEGORIZED)

    def reset(self) -> None:
        self._items.clear()
        self._index.clear()

    def _recategorize(self, positions: Iterable[int], category: str) -> int:
        changed = 0
        for pos in positions:
            tx = self._items[pos]
            if tx.category != category:
                self._items[pos] = replace(tx, category=category)
                changed += 1
        return changed


__all__ = ["TransactionStore"]
