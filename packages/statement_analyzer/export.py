"""CSV export of transactions.

Format (fixed):

- Header ``Date,Description,Amount,Type,Category,Notes``.
- ``Description`` and ``Notes`` are always double-quoted with embedded quotes
  doubled; other fields are written as-is unless they contain a comma, quote,
  or line break, in which case they are quoted the same way.
- Amounts are written in their shortest form (``2000``, ``5.5``).
- Rows are joined with ``\\n`` and there is no trailing newline.
"""

from __future__ import annotations

from collections.abc import Iterable
from os import PathLike
from pathlib import Path

from .logging_setup import get_logger
from .models import Transaction

_logger = get_logger("statement_analyzer.export")

CSV_HEADER: tuple[str, ...] = ("Date", "Description", "Amount", "Type", "Category", "Notes")
DEFAULT_EXPORT_FILENAME = "statement_analysis.csv"


def _quote(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _plain(value: str) -> str:
    # Unquoted columns fall back to quoting when they hold a delimiter.
    if any(c in value for c in ",\"\r\n"):
        return _quote(value)
    return value


def _format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def to_csv(transactions: Iterable[Transaction]) -> str:
    rows = [",".join(CSV_HEADER)]
    for tx in transactions:
        rows.append(
            ",".join(
                (
                    _plain(tx.date),
                    _quote(tx.description),
                    _format_amount(tx.amount),
                    tx.type,
                    _plain(tx.category),
                    _quote(tx.notes),
                )
            )
        )
    return "\n".join(rows)


def write_csv(
    path: str | PathLike[str], transactions: Iterable[Transaction]
) -> Path:
    """Write :func:`to_csv` output to ``path`` (UTF-8) and return the path."""

    p = Path(path)
    content = to_csv(transactions)
    p.write_text(content, encoding="utf-8")
    _logger.info("export:written path=%s rows=%d", p, content.count("\n"))
    return p


__all__ = ["CSV_HEADER", "DEFAULT_EXPORT_FILENAME", "to_csv", "write_csv"]
