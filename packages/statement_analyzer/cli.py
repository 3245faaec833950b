# ruff: noqa: I001
"""Typer-based console interface for ``statement_analyzer``.

Environment variables (notably ``OPENAI_API_KEY``) are loaded from a local
``.env`` using ``python-dotenv`` before any command runs. Commands operate on
a :class:`~statement_analyzer.app.StatementAnalyzer` backed by the SQL
key-value store, so categories, notes, and the last session survive between
invocations.
"""

from __future__ import annotations

import asyncio
import mimetypes
import os
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .app import StatementAnalyzer
from .export import DEFAULT_EXPORT_FILENAME
from .kvstore import SqlKeyValueStore
from .llm import OpenAIStatementSource
from .logging_setup import configure_logging
from .models import IngestionState, Upload
from .pipeline import BatchAppended, IngestionEvent, StateChanged
from .views import ALL_CATEGORIES, TransactionFilter, summarize


def _build_analyzer(
    *,
    database_url: str | None,
    model: str | None = None,
    currency: str | None = None,
    verbose: bool = False,
) -> StatementAnalyzer:
    def _on_event(event: IngestionEvent) -> None:
        if isinstance(event, BatchAppended):
            typer.echo(f"+{len(event.transactions)} transactions (total {event.total})")
        elif isinstance(event, StateChanged) and verbose:
            typer.echo(f"[{event.state}] {event.message or ''}".rstrip())

    source = OpenAIStatementSource(model=model, currency=currency)
    return StatementAnalyzer(
        source,
        kv=SqlKeyValueStore(database_url=database_url),
        listener=_on_event,
    )


def _print_summary(analyzer: StatementAnalyzer) -> None:
    summary = summarize(analyzer.store)
    typer.echo(
        f"Credits: {summary.total_credits:,.2f}  Debits: {summary.total_debits:,.2f}  "
        f"Net: {summary.net_flow:,.2f}"
    )
    shares = summary.share_of_spending()
    for name, amount in summary.spending_by_category:
        typer.echo(f"  {name}: {amount:,.2f} ({shares.get(name, 0.0):.1f}%)")


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Extract transactions from a PDF bank statement using OpenAI (Responses API), "
        "categorize them, and export CSV. Loads OPENAI_API_KEY from a local .env."
    ),
)


# Module-level option objects to satisfy ruff B008 (no calls in parameter defaults).
PDF_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--pdf-path",
    help="Path to the bank statement PDF",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, help="Override STATEMENT_ANALYZER_DATABASE_URL (defaults to a local SQLite file)."
)


@app.command("analyze")
def analyze_cmd(
    pdf_path: Annotated[Path, PDF_PATH_OPTION],
    *,
    csv_out: Path = typer.Option(
        Path(DEFAULT_EXPORT_FILENAME), help="Where to write the exported CSV."
    ),
    currency: str | None = typer.Option(None, help="Currency context for the model."),
    model: str | None = typer.Option(None, help="Override STATEMENT_ANALYZER_MODEL."),
    database_url: str | None = DATABASE_URL_OPTION,
    verbose: bool = typer.Option(False, "--verbose", help="Print state transitions."),
) -> None:
    """Stream a statement through the model, then export the result as CSV."""

    if not os.getenv("OPENAI_API_KEY"):
        print("Error: OPENAI_API_KEY is not set in the environment.", file=sys.stderr)
        raise typer.Exit(1)

    try:
        content = pdf_path.read_bytes()
    except FileNotFoundError:
        print(f"Error: File not found: {pdf_path}", file=sys.stderr)
        raise typer.Exit(1) from None
    except PermissionError:
        print(f"Error: Permission denied: {pdf_path}", file=sys.stderr)
        raise typer.Exit(1) from None

    mime_type, _ = mimetypes.guess_type(pdf_path.name)
    upload = Upload(filename=pdf_path.name, content=content, mime_type=mime_type)

    analyzer = _build_analyzer(
        database_url=database_url, model=model, currency=currency, verbose=verbose
    )
    result = asyncio.run(analyzer.upload(upload))

    # Partial results are still exported and saved on failure.
    if len(analyzer.store) > 0:
        analyzer.export_csv(csv_out)
        analyzer.save_session()
        typer.echo(f"Wrote {len(analyzer.store)} transactions to {csv_out}")
        _print_summary(analyzer)

    if result.state is not IngestionState.COMPLETED:
        print(f"Error: {result.error or 'analysis did not complete'}", file=sys.stderr)
        raise typer.Exit(1)
    if result.rejected:
        typer.echo(f"Skipped {result.rejected} unparsable line(s).")


@app.command("export")
def export_cmd(
    *,
    csv_out: Path = typer.Option(Path(DEFAULT_EXPORT_FILENAME), help="Output CSV path."),
    query: str = typer.Option("", help="Case-insensitive description search."),
    category: str = typer.Option(ALL_CATEGORIES, help="Only this category."),
    start_date: str = typer.Option("", help="Earliest date (YYYY-MM-DD)."),
    end_date: str = typer.Option("", help="Latest date (YYYY-MM-DD)."),
    min_amount: str = typer.Option("", help="Minimum amount."),
    max_amount: str = typer.Option("", help="Maximum amount."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Export the last saved session, optionally filtered."""

    analyzer = _build_analyzer(database_url=database_url)
    if not analyzer.restore_session():
        print("Error: no saved session to export; run `analyze` first.", file=sys.stderr)
        raise typer.Exit(1)
    analyzer.filter = TransactionFilter(
        query=query,
        category=category,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
    )
    analyzer.export_csv(csv_out)
    typer.echo(f"Wrote {len(analyzer.visible())} transactions to {csv_out}")


@app.command("categories")
def categories_cmd(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """List categories."""

    analyzer = _build_analyzer(database_url=database_url)
    for c in analyzer.categories:
        typer.echo(c.name)


@app.command("add-category")
def add_category_cmd(name: str, database_url: str | None = DATABASE_URL_OPTION) -> None:
    analyzer = _build_analyzer(database_url=database_url)
    if analyzer.add_category(name) is None:
        print(f"Error: invalid or duplicate category: {name!r}", file=sys.stderr)
        raise typer.Exit(1)
    typer.echo(f"Added {name.strip()}")


@app.command("rename-category")
def rename_category_cmd(
    old: str, new: str, database_url: str | None = DATABASE_URL_OPTION
) -> None:
    """Rename a category and rewrite the saved session's transactions."""

    analyzer = _build_analyzer(database_url=database_url)
    had_session = analyzer.restore_session()
    found = analyzer.categories.find(old)
    if found is None or not analyzer.rename_category(found.id, new):
        print(f"Error: cannot rename {old!r} to {new!r}", file=sys.stderr)
        raise typer.Exit(1)
    if had_session:
        analyzer.save_session()
    typer.echo(f"Renamed {found.name} -> {new.strip()}")


@app.command("delete-category")
def delete_category_cmd(name: str, database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Delete a category; affected saved transactions become Uncategorized."""

    analyzer = _build_analyzer(database_url=database_url)
    had_session = analyzer.restore_session()
    found = analyzer.categories.find(name)
    if found is None:
        print(f"Error: no such category: {name!r}", file=sys.stderr)
        raise typer.Exit(1)
    analyzer.delete_category(found.id)
    if had_session:
        analyzer.save_session()
    typer.echo(f"Deleted {found.name}")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:  # pragma: no cover - console script shim
    app()


if __name__ == "__main__":  # pragma: no cover
    app()
