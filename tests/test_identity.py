import logging

from statement_analyzer.identity import IdentityAssigner, new_session_key, note_key, note_key_for
from statement_analyzer.kvstore import InMemoryKeyValueStore, StoreResult
from statement_analyzer.models import UNCATEGORIZED, RawRecord


def _rec(description: str = "Coffee", amount: float = 4.5) -> RawRecord:
    return RawRecord(date="2024-01-05", description=description, amount=amount, type="debit")


def test_ids_are_sequential_within_a_session():
    a = IdentityAssigner("1700000000000")
    ids = [a.assign(_rec()).id for _ in range(3)]
    assert ids == ["1700000000000-0", "1700000000000-1", "1700000000000-2"]


def test_identical_records_get_distinct_ids():
    a = IdentityAssigner("s")
    t1, t2 = a.assign(_rec()), a.assign(_rec())
    assert t1.id != t2.id
    assert (t1.date, t1.description, t1.amount) == (t2.date, t2.description, t2.amount)


def test_sessions_with_different_keys_do_not_collide():
    a, b = IdentityAssigner("100"), IdentityAssigner("101")
    assert a.assign(_rec()).id != b.assign(_rec()).id


def test_assigned_transaction_defaults():
    tx = IdentityAssigner("s").assign(_rec())
    assert tx.category == UNCATEGORIZED
    assert tx.notes is None
    assert tx.type == "debit"


def test_session_key_is_millisecond_timestamp():
    key = new_session_key()
    assert key.isdigit()
    assert len(key) >= 13


def test_note_key_ignores_case_whitespace_and_amount_formatting():
    k1 = note_key(date="2024-01-05", description="Coffee  Shop", amount=4.5, type="debit")
    k2 = note_key(date=" 2024-01-05 ", description="coffee shop", amount=4.50, type="DEBIT")
    assert k1 == k2
    assert k1.startswith("note:")


def test_note_key_differs_on_content():
    base = dict(date="2024-01-05", description="Coffee", amount=4.5, type="debit")
    k = note_key(**base)
    assert k != note_key(**{**base, "amount": 4.51})
    assert k != note_key(**{**base, "type": "credit"})
    assert k != note_key(**{**base, "date": "2024-01-06"})


def test_saved_note_is_restored_on_assign():
    kv = InMemoryKeyValueStore({note_key_for(_rec()): "work expense"})
    a = IdentityAssigner("s", notes=kv)
    assert a.assign(_rec()).notes == "work expense"
    assert a.assign(_rec("Tea")).notes is None


def test_failed_note_lookup_leaves_notes_unset(caplog):
    class _Broken:
        def get(self, key):
            return StoreResult.failure("disk on fire")

        def set(self, key, value):
            return StoreResult.failure("disk on fire")

        def remove(self, key):
            return StoreResult.failure("disk on fire")

    a = IdentityAssigner("s", notes=_Broken())
    with caplog.at_level(logging.WARNING, logger="statement_analyzer.identity"):
        tx = a.assign(_rec())
    assert tx.notes is None
    assert any("identity:note_lookup_failed" in r.getMessage() for r in caplog.records)
