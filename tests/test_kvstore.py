import pytest
from sqlalchemy.exc import OperationalError

import statement_analyzer.kvstore as kvstore_mod
from statement_analyzer.kvstore import InMemoryKeyValueStore, SqlKeyValueStore, StoreResult


@pytest.fixture(params=["memory", "sql"])
def kv(request):
    if request.param == "memory":
        return InMemoryKeyValueStore()
    return SqlKeyValueStore()


def test_missing_key_is_successful_none(kv):
    res = kv.get("nope")
    assert res.ok
    assert res.value is None


def test_set_get_overwrite_remove(kv):
    assert kv.set("k", "v1").ok
    assert kv.get("k").value == "v1"
    assert kv.set("k", "v2").ok
    assert kv.get("k").value == "v2"
    assert kv.remove("k").ok
    assert kv.get("k").value is None
    # Removing again is not an error.
    assert kv.remove("k").ok


def test_sql_store_persists_across_instances():
    SqlKeyValueStore().set("categories", "[]")
    assert SqlKeyValueStore().get("categories").value == "[]"


def test_sql_store_reports_backend_errors(monkeypatch):
    def _boom(*a, **kw):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(kvstore_mod, "session_scope", _boom)
    kv = SqlKeyValueStore()

    for res in (kv.get("k"), kv.set("k", "v"), kv.remove("k")):
        assert not res.ok
        assert res.error


def test_store_result_constructors():
    assert StoreResult.success("x") == StoreResult(ok=True, value="x")
    failed = StoreResult.failure(ValueError("bad"))
    assert not failed.ok
    assert failed.error == "bad"


def test_in_memory_initial_data_is_copied():
    data = {"a": "1"}
    kv = InMemoryKeyValueStore(data)
    kv.set("b", "2")
    assert "b" in kv and "b" not in data
    assert len(kv) == 2


def test_sql_store_reports_engine_url_mismatch(tmp_path):
    # Binds the shared engine to the per-test default URL first.
    assert SqlKeyValueStore().set("k", "v").ok

    other = SqlKeyValueStore(database_url=f"sqlite+pysqlite:///{tmp_path / 'other.db'}")
    for res in (other.get("k"), other.set("k", "v"), other.remove("k")):
        assert not res.ok
        assert "different database URL" in res.error


def test_sql_store_reports_missing_driver(monkeypatch):
    def _no_driver(*a, **kw):
        raise ImportError("No module named 'psycopg'")

    monkeypatch.setattr(kvstore_mod, "session_scope", _no_driver)
    res = SqlKeyValueStore().get("k")
    assert not res.ok
    assert "psycopg" in res.error
