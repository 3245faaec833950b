"""Identity assignment for accepted records.

Ids have the form ``"<session_key>-<sequence>"``. The sequence is a
per-session counter, so ids stay distinct however many records are accepted
within one clock tick. The session key only has to tell sessions apart.

Notes saved against a transaction are keyed by a fingerprint of its content
(see :func:`note_key`) rather than by id, which lets a re-upload of the same
statement pick its annotations back up.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import time
import unicodedata
from decimal import ROUND_HALF_UP, Decimal

from .kvstore import KeyValueStore
from .logging_setup import get_logger
from .models import UNCATEGORIZED, RawRecord, Transaction

_logger = get_logger("statement_analyzer.identity")

NOTE_KEY_PREFIX = "note:"


def new_session_key() -> str:
    """Return a session key derived from the session start time (milliseconds)."""

    return str(time.time_ns() // 1_000_000)


def _normalize_description(description: str) -> str:
    s = unicodedata.normalize("NFKC", description).strip()
    return " ".join(s.split()).casefold()


def note_key(*, date: str, description: str, amount: float, type: str) -> str:
    """Return the key under which a note for this transaction content is stored.

    Fields used: normalized description (NFKC, collapsed whitespace,
    casefolded), trimmed date, amount rounded to 2dp, lower-cased type.
    """

    amt = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    payload = {
        "date": date.strip(),
        "description": _normalize_description(description),
        "amount": f"{abs(amt):.2f}",
        "type": type.strip().lower(),
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return NOTE_KEY_PREFIX + hashlib.sha256(data.encode("utf-8")).hexdigest()


def note_key_for(tx: Transaction | RawRecord) -> str:
    return note_key(date=tx.date, description=tx.description, amount=tx.amount, type=tx.type)


class IdentityAssigner:
    """Turn :class:`RawRecord` values into :class:`Transaction` entities.

    One assigner serves exactly one ingestion session. When ``notes`` is
    given, a previously saved note is restored onto the new transaction; a
    failed lookup leaves ``notes`` unset.
    """

    def __init__(self, session_key: str, *, notes: KeyValueStore | None = None) -> None:
        self._session_key = session_key
        self._counter = itertools.count()
        self._notes = notes

    @property
    def session_key(self) -> str:
        return self._session_key

    def assign(self, record: RawRecord) -> Transaction:
        tx_id = f"{self._session_key}-{next(self._counter)}"
        return Transaction(
            id=tx_id,
            date=record.date,
            description=record.description,
            amount=record.amount,
            type=record.type,
            category=UNCATEGORIZED,
            notes=self._lookup_note(record),
        )

    def _lookup_note(self, record: RawRecord) -> str | None:
        if self._notes is None:
            return None
        res = self._notes.get(note_key_for(record))
        if not res.ok:
            _logger.warning(
                "identity:note_lookup_failed session=%s error=%s", self._session_key, res.error
            )
            return None
        return res.value or None


__all__ = [
    "IdentityAssigner",
    "NOTE_KEY_PREFIX",
    "new_session_key",
    "note_key",
    "note_key_for",
]
