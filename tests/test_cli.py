from __future__ import annotations

import pytest
from typer.testing import CliRunner

import statement_analyzer.cli as cli_mod
from statement_analyzer.cli import app
from tests.helpers.openai_stub import AsyncOpenAIStub
from tests.helpers.streams import record_line

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_cli(monkeypatch: pytest.MonkeyPatch, tmp_path):
    # The CLI attaches a handler and disables propagation; keep tests hermetic.
    monkeypatch.setattr(cli_mod, "configure_logging", lambda *a, **kw: None)
    monkeypatch.setattr(cli_mod, "load_dotenv", lambda *a, **kw: False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def stub_openai(monkeypatch: pytest.MonkeyPatch) -> AsyncOpenAIStub:
    text = "\n".join(
        [
            record_line("2024-01-05", "Coffee", 5.5),
            record_line("2024-01-06", "Salary", 2000, "credit"),
            "not a record",
            record_line("2024-01-07", "Market", 20),
        ]
    )
    stub = AsyncOpenAIStub([text[:30], text[30:]])
    monkeypatch.setattr("statement_analyzer.llm.AsyncOpenAI", lambda: stub)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return stub


def test_analyze_writes_csv_and_saves_session(stub_openai, tmp_path):
    pdf = tmp_path / "statement.pdf"
    pdf.write_bytes(b"%PDF-1.7")
    out = tmp_path / "out.csv"

    result = runner.invoke(app, ["analyze", "--pdf-path", str(pdf), "--csv-out", str(out)])

    assert result.exit_code == 0, result.output
    assert "Wrote 3 transactions" in result.output
    assert "Skipped 1 unparsable line(s)." in result.output
    header = out.read_text(encoding="utf-8").splitlines()[0]
    assert header == "Date,Description,Amount,Type,Category,Notes"

    exported = tmp_path / "filtered.csv"
    result = runner.invoke(app, ["export", "--csv-out", str(exported), "--query", "coffee"])
    assert result.exit_code == 0, result.output
    assert len(exported.read_text(encoding="utf-8").splitlines()) == 2


def test_analyze_rejects_non_pdf(stub_openai, tmp_path):
    txt = tmp_path / "notes.txt"
    txt.write_text("hello")

    result = runner.invoke(app, ["analyze", "--pdf-path", str(txt)])

    assert result.exit_code == 1
    assert "Please upload a valid PDF file." in result.output
    assert stub_openai.calls == []


def test_analyze_requires_api_key(monkeypatch, tmp_path):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = runner.invoke(app, ["analyze", "--pdf-path", str(tmp_path / "x.pdf")])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_category_commands_round_trip():
    assert runner.invoke(app, ["add-category", "Travel"]).exit_code == 0
    assert runner.invoke(app, ["add-category", "travel"]).exit_code == 1

    assert runner.invoke(app, ["rename-category", "Groceries", "Food"]).exit_code == 0
    assert runner.invoke(app, ["delete-category", "Rent"]).exit_code == 0

    listed = runner.invoke(app, ["categories"]).output.splitlines()
    assert listed == ["Food", "Utilities", "Entertainment", "Travel"]


def test_export_without_session_fails():
    result = runner.invoke(app, ["export"])
    assert result.exit_code == 1
    assert "no saved session" in result.output
