"""Category set management and reconciliation with the transaction store.

Transactions reference categories by name. Renaming or deleting a category
therefore rewrites the transactions that carry it:

- ``rename`` calls :meth:`TransactionStore.reassign_category`.
- ``delete`` calls :meth:`TransactionStore.clear_category`, moving the
  affected transactions back to ``Uncategorized``.

The set is persisted as a JSON list under the ``"categories"`` key.
Unreadable or missing data falls back to :data:`DEFAULT_CATEGORIES`.
"""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from .kvstore import KeyValueStore, StoreResult
from .logging_setup import get_logger
from .models import UNCATEGORIZED, Category
from .store import TransactionStore

_logger = get_logger("statement_analyzer.categories")

CATEGORIES_KEY = "categories"

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="1", name="Groceries"),
    Category(id="2", name="Utilities"),
    Category(id="3", name="Rent"),
    Category(id="4", name="Entertainment"),
)

_MAX_NAME_LEN = 64
_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &\-/]+$")


# ---------------------------
# Name normalization/validation
# ---------------------------


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name`` (case kept)."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, max_len: int = _MAX_NAME_LEN) -> NameValidation:
    """Check a category name: non-empty after trimming, at most ``max_len`` chars.

    Allowed characters are letters, numbers, spaces, and ``& - /``, which also
    keeps names safe to write unquoted into CSV.

    ``Uncategorized`` is reserved for the default assignment and cannot be
    used as a category name.
    """

    n = normalize_name(name)
    if not n:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / are allowed")
    if n.casefold() == UNCATEGORIZED.casefold():
        return NameValidation(False, f"'{UNCATEGORIZED}' is reserved")
    return NameValidation(True, None)


# ---------------------------
# Persistence shape
# ---------------------------


class _CategoryRow(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore")

    id: str
    name: str


_ROWS = TypeAdapter(list[_CategoryRow])


class CategorySet:
    """Ordered, name-unique (case-insensitive) set of categories."""

    def __init__(self, categories: Iterable[Category] = DEFAULT_CATEGORIES) -> None:
        self._items: list[Category] = list(categories)

    def __iter__(self) -> Iterator[Category]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self._items)

    def get(self, category_id: str) -> Category | None:
        return next((c for c in self._items if c.id == category_id), None)

    def find(self, name: str) -> Category | None:
        key = normalize_name(name).casefold()
        return next((c for c in self._items if c.name.casefold() == key), None)

    def _conflicts(self, name: str, *, exclude_id: str | None = None) -> bool:
        found = self.find(name)
        return found is not None and found.id != exclude_id

    def add(self, name: str) -> Category | None:
        """Add ``name``; returns ``None`` when invalid or already present."""

        n = normalize_name(name)
        if not validate_name(n).ok or self._conflicts(n):
            return None
        category = Category(id=uuid.uuid4().hex, name=n)
        self._items.append(category)
        return category

    def rename(self, category_id: str, new_name: str, store: TransactionStore) -> bool:
        """Rename a category and rewrite the store's transactions that use it."""

        n = normalize_name(new_name)
        current = self.get(category_id)
        if current is None or not validate_name(n).ok or self._conflicts(n, exclude_id=category_id):
            return False
        if n == current.name:
            return True

        pos = self._items.index(current)
        self._items[pos] = replace(current, name=n)
        moved = store.reassign_category(current.name, n)
        _logger.info(
            'categories:renamed old="%s" new="%s" transactions=%d', current.name, n, moved
        )
        return True

    def delete(self, category_id: str, store: TransactionStore) -> bool:
        """Remove a category; its transactions fall back to ``Uncategorized``."""

        current = self.get(category_id)
        if current is None:
            return False
        self._items.remove(current)
        moved = store.clear_category(current.name)
        _logger.info('categories:deleted name="%s" transactions=%d', current.name, moved)
        return True

    # ---- Persistence --------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps([{"id": c.id, "name": c.name} for c in self._items])

    def save(self, kv: KeyValueStore) -> StoreResult[None]:
        res = kv.set(CATEGORIES_KEY, self.to_json())
        if not res.ok:
            _logger.error("categories:save_failed error=%s", res.error)
        return res

    @classmethod
    def load(cls, kv: KeyValueStore) -> CategorySet:
        res = kv.get(CATEGORIES_KEY)
        if not res.ok:
            _logger.error("categories:load_failed error=%s", res.error)
            return cls()
        if res.value is None:
            return cls()
        try:
            rows = _ROWS.validate_json(res.value)
        except ValidationError as e:
            _logger.error("categories:load_invalid errors=%d", e.error_count())
            return cls()
        return cls(Category(id=r.id, name=r.name) for r in rows)


__all__ = [
    "CATEGORIES_KEY",
    "CategorySet",
    "DEFAULT_CATEGORIES",
    "NameValidation",
    "normalize_name",
    "validate_name",
]
