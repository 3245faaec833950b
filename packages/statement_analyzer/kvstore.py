"""Key-value persistence for categories, notes, and session snapshots.

Persistence is a convenience, never a reason to fail an ingestion. Every
operation therefore reports its outcome through :class:`StoreResult` instead
of raising: callers decide whether a failed read means "use defaults" and
backends log the underlying error once.

Implementations
---------------
- :class:`InMemoryKeyValueStore`: process-local dict; used by tests and by
  callers that do not want anything written to disk.
- :class:`SqlKeyValueStore`: rows in the ``kv_entries`` table via the
  SQLAlchemy helpers in :mod:`statement_analyzer.db`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .db import KvEntry, session_scope
from .logging_setup import get_logger

_logger = get_logger("statement_analyzer.kvstore")

# get_engine raises RuntimeError on a URL mismatch; a missing DB driver is an ImportError.
_BACKEND_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, RuntimeError, ImportError)


@dataclass(frozen=True, slots=True)
class StoreResult[T]:
    """Outcome of a key-value operation.

    ``ok`` is False only when the backend failed; a missing key is a
    successful read with ``value=None``.
    """

    ok: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def success(cls, value: T | None = None) -> StoreResult[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: BaseException | str) -> StoreResult[T]:
        return cls(ok=False, error=str(error))


class KeyValueStore(Protocol):
    def get(self, key: str) -> StoreResult[str]: ...

    def set(self, key: str, value: str) -> StoreResult[None]: ...

    def remove(self, key: str) -> StoreResult[None]: ...


class InMemoryKeyValueStore:
    """Dict-backed store. Reads and writes cannot fail."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> StoreResult[str]:
        return StoreResult.success(self._data.get(key))

    def set(self, key: str, value: str) -> StoreResult[None]:
        self._data[key] = value
        return StoreResult.success()

    def remove(self, key: str) -> StoreResult[None]:
        self._data.pop(key, None)
        return StoreResult.success()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class SqlKeyValueStore:
    """SQLAlchemy-backed store over the ``kv_entries`` table.

    ``database_url`` falls back to ``STATEMENT_ANALYZER_DATABASE_URL`` and
    then to a SQLite file in the working directory (see
    :func:`statement_analyzer.db.get_engine`).
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def get(self, key: str) -> StoreResult[str]:
        try:
            with session_scope(database_url=self._database_url) as session:
                value = session.execute(
                    select(KvEntry.value).where(KvEntry.key == key)
                ).scalar_one_or_none()
        except _BACKEND_ERRORS as e:
            _logger.error("kv:get_failed key=%s error=%s", key, e.__class__.__name__)
            return StoreResult.failure(e)
        return StoreResult.success(value)

    def set(self, key: str, value: str) -> StoreResult[None]:
        try:
            with session_scope(database_url=self._database_url) as session:
                # merge() inserts or updates by primary key.
                session.merge(KvEntry(key=key, value=value))
        except _BACKEND_ERRORS as e:
            _logger.error("kv:set_failed key=%s error=%s", key, e.__class__.__name__)
            return StoreResult.failure(e)
        return StoreResult.success()

    def remove(self, key: str) -> StoreResult[None]:
        try:
            with session_scope(database_url=self._database_url) as session:
                row = session.get(KvEntry, key)
                if row is not None:
                    session.delete(row)
        except _BACKEND_ERRORS as e:
            _logger.error("kv:remove_failed key=%s error=%s", key, e.__class__.__name__)
            return StoreResult.failure(e)
        return StoreResult.success()


__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
    "StoreResult",
]
