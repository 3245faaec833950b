"""Application state and commands for one analyzer instance.

:class:`StatementAnalyzer` owns everything a front end needs: the
transaction store, the category set, the ingestion pipeline, the active
filter, and the key-value store used for categories, notes, and session
snapshots. Front ends (the CLI, tests, a web handler) call its commands
instead of touching the pieces directly.
"""

from __future__ import annotations

from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from .categories import CategorySet
from .export import to_csv, write_csv
from .identity import note_key_for
from .kvstore import InMemoryKeyValueStore, KeyValueStore
from .llm import ChunkSource
from .logging_setup import get_logger
from .models import Category, IngestionState, Transaction, TransactionType, Upload
from .pipeline import (
    DEFAULT_RECOVERY_DELAY_SEC,
    IngestionPipeline,
    IngestionResult,
    Listener,
)
from .store import TransactionStore
from .views import TransactionFilter, filter_transactions

_logger = get_logger("statement_analyzer.app")

SESSION_KEY = "session"
SESSION_SCHEMA_VERSION = 1


# ---- Session snapshot shape --------------------------------------------------


class _TransactionRow(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")

    id: str
    date: str
    description: str
    amount: float
    type: TransactionType
    category: str
    notes: str | None = None


class SessionSnapshot(BaseModel):
    """Persisted copy of the transactions of one analyzer.

    Categories are not part of the snapshot; they live under their own key
    (see :mod:`statement_analyzer.categories`).
    """

    model_config = ConfigDict(strict=True, extra="forbid")

    schema_version: int
    transactions: list[_TransactionRow]


class StatementAnalyzer:
    """Owns the state of one analyzer session and exposes its commands."""

    def __init__(
        self,
        source: ChunkSource,
        *,
        kv: KeyValueStore | None = None,
        listener: Listener | None = None,
        recovery_delay: float = DEFAULT_RECOVERY_DELAY_SEC,
    ) -> None:
        self.kv: KeyValueStore = kv if kv is not None else InMemoryKeyValueStore()
        self.store = TransactionStore()
        self.categories = CategorySet.load(self.kv)
        self.filter = TransactionFilter()
        self.pipeline = IngestionPipeline(
            self.store,
            source,
            notes=self.kv,
            listener=listener,
            recovery_delay=recovery_delay,
        )

    # ---- Ingestion ----------------------------------------------------------

    @property
    def state(self) -> IngestionState:
        return self.pipeline.state

    async def upload(self, upload: Upload) -> IngestionResult:
        self.filter = TransactionFilter()
        return await self.pipeline.ingest(upload)

    def reset(self) -> None:
        """Return to the initial screen: no transactions, no filters."""

        self.pipeline.reset()
        self.filter = TransactionFilter()

    # ---- Transaction edits --------------------------------------------------

    def set_category(self, tx_id: str, category: str) -> bool:
        return self.store.update_field(tx_id, category=category) > 0

    def bulk_set_category(self, tx_ids: Iterable[str], category: str) -> int:
        return self.store.bulk_update_category(tx_ids, category)

    def save_note(self, tx_id: str, text: str) -> bool:
        """Set (or clear, when blank) the note on a transaction and persist it."""

        tx = self.store.get(tx_id)
        if tx is None:
            return False
        note = text.strip() or None
        self.store.update_field(tx_id, notes=note)

        key = note_key_for(tx)
        res = self.kv.set(key, note) if note else self.kv.remove(key)
        if not res.ok:
            _logger.warning("app:note_persist_failed id=%s error=%s", tx_id, res.error)
        return True

    # ---- Categories ---------------------------------------------------------

    def add_category(self, name: str) -> Category | None:
        category = self.categories.add(name)
        if category is not None:
            self.categories.save(self.kv)
        return category

    def rename_category(self, category_id: str, new_name: str) -> bool:
        ok = self.categories.rename(category_id, new_name, self.store)
        if ok:
            self.categories.save(self.kv)
        return ok

    def delete_category(self, category_id: str) -> bool:
        ok = self.categories.delete(category_id, self.store)
        if ok:
            self.categories.save(self.kv)
        return ok

    # ---- Views and export ---------------------------------------------------

    def visible(self, criteria: TransactionFilter | None = None) -> list[Transaction]:
        return filter_transactions(self.store, criteria if criteria is not None else self.filter)

    def export_csv(self, path: str | PathLike[str] | None = None) -> str | Path:
        """Export the currently visible transactions; write to ``path`` when given."""

        rows = self.visible()
        if path is None:
            return to_csv(rows)
        return write_csv(path, rows)

    # ---- Session persistence ------------------------------------------------

    def save_session(self) -> bool:
        snapshot = SessionSnapshot(
            schema_version=SESSION_SCHEMA_VERSION,
            transactions=[
                _TransactionRow(
                    id=tx.id,
                    date=tx.date,
                    description=tx.description,
                    amount=tx.amount,
                    type=tx.type,
                    category=tx.category,
                    notes=tx.notes,
                )
                for tx in self.store
            ],
        )
        res = self.kv.set(SESSION_KEY, snapshot.model_dump_json())
        if not res.ok:
            _logger.error("app:session_save_failed error=%s", res.error)
        return res.ok

    def restore_session(self) -> bool:
        """Replace the store contents with the saved snapshot, if one exists."""

        if self.pipeline.is_busy:
            return False
        res = self.kv.get(SESSION_KEY)
        if not res.ok or res.value is None:
            return False
        try:
            snapshot = SessionSnapshot.model_validate_json(res.value)
        except ValidationError as e:
            _logger.error("app:session_invalid errors=%d", e.error_count())
            return False
        if snapshot.schema_version != SESSION_SCHEMA_VERSION:
            _logger.warning("app:session_version_mismatch found=%d", snapshot.schema_version)
            return False

        try:
            restored = TransactionStore(
                Transaction(**row.model_dump()) for row in snapshot.transactions
            )
        except ValueError as e:
            _logger.error("app:session_invalid error=%s", e)
            return False

        self.store.reset()
        self.store.append_batch(restored)
        _logger.info("app:session_restored transactions=%d", len(self.store))
        return True

    def clear_session(self) -> None:
        self.kv.remove(SESSION_KEY)


__all__ = ["SESSION_KEY", "SessionSnapshot", "StatementAnalyzer"]
