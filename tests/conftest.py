"""Pytest configuration for test isolation.

The SQL key-value store binds a process-wide engine on first use and defaults
to a SQLite file in the working directory. To keep tests hermetic, each test
gets its own database file under ``tmp_path`` and the shared engine is
disposed afterwards.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure the workspace `packages/` dir is on sys.path so `statement_analyzer` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from statement_analyzer.db import DATABASE_URL_ENV, reset_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """Point the default database URL at a per-test SQLite file."""

    db_file = tmp_path / "statement-analyzer.db"
    url = f"sqlite+pysqlite:///{os.fspath(db_file)}"
    monkeypatch.setenv(DATABASE_URL_ENV, url)
    reset_engine()
    yield url
    reset_engine()
