import asyncio
import base64
from types import SimpleNamespace

import pytest

from statement_analyzer.llm import ExtractionError, OpenAIStatementSource, resolve_model
from statement_analyzer.models import IngestionState
from statement_analyzer.pipeline import IngestionPipeline
from statement_analyzer.prompting import build_extraction_instructions
from statement_analyzer.store import TransactionStore
from tests.helpers.openai_stub import AsyncOpenAIStub, failed_event
from tests.helpers.streams import PDF, record_line


async def _collect(source, upload=PDF):
    return [chunk async for chunk in source(upload)]


def test_yields_text_deltas_in_order_and_closes_stream():
    stub = AsyncOpenAIStub(
        ["a", SimpleNamespace(type="response.created"), "b", "", "c"],
    )
    source = OpenAIStatementSource(client_factory=lambda: stub, model="gpt-test")

    assert asyncio.run(_collect(source)) == ["a", "b", "c"]
    assert stub.streams[0].closed


def test_request_carries_pdf_and_instructions():
    stub = AsyncOpenAIStub([])
    source = OpenAIStatementSource(client_factory=lambda: stub, model="gpt-test", currency="EUR")
    asyncio.run(_collect(source))

    (call,) = stub.calls
    assert call["model"] == "gpt-test"
    assert call["stream"] is True
    assert call["instructions"] == build_extraction_instructions("EUR")
    assert "EUR" in call["instructions"]

    content = call["input"][0]["content"]
    file_part = content[0]
    assert file_part["type"] == "input_file"
    assert file_part["filename"] == "statement.pdf"
    prefix = "data:application/pdf;base64,"
    assert file_part["file_data"].startswith(prefix)
    assert base64.b64decode(file_part["file_data"][len(prefix) :]) == PDF.content


def test_failed_event_raises_extraction_error():
    stub = AsyncOpenAIStub(["partial", failed_event("quota exceeded")])
    source = OpenAIStatementSource(client_factory=lambda: stub, model="m")

    with pytest.raises(ExtractionError, match="quota exceeded"):
        asyncio.run(_collect(source))
    assert stub.streams[0].closed


def test_error_event_message():
    stub = AsyncOpenAIStub([SimpleNamespace(type="error", message="rate limited")])
    source = OpenAIStatementSource(client_factory=lambda: stub, model="m")
    with pytest.raises(ExtractionError, match="rate limited"):
        asyncio.run(_collect(source))


def test_resolve_model(monkeypatch):
    monkeypatch.delenv("STATEMENT_ANALYZER_MODEL", raising=False)
    assert resolve_model(None) == "gpt-5"
    monkeypatch.setenv("STATEMENT_ANALYZER_MODEL", " gpt-custom ")
    assert resolve_model(None) == "gpt-custom"
    assert resolve_model("explicit") == "explicit"


def test_pipeline_over_openai_source_keeps_partial_results_on_failure():
    coffee = record_line("2024-01-05", "Coffee", 5.5)
    salary = record_line("2024-01-06", "Salary", 2000, "credit")
    stub = AsyncOpenAIStub(
        [coffee[:20], coffee[20:] + "\n" + salary[:5], failed_event("quota exceeded")]
    )
    store = TransactionStore()
    pipeline = IngestionPipeline(
        store, OpenAIStatementSource(client_factory=lambda: stub, model="m")
    )

    result = asyncio.run(pipeline.ingest(PDF))

    assert result.state is IngestionState.FAILED
    assert result.error == "Failed to analyze statement. quota exceeded"
    assert [t.description for t in store] == ["Coffee"]
    assert stub.streams[0].closed


def test_pipeline_over_openai_source_end_to_end():
    lines = [record_line("2024-01-05", "Coffee", 5.5), record_line("2024-01-06", "Tea", 3)]
    text = "\n".join(lines)
    stub = AsyncOpenAIStub([text[i : i + 7] for i in range(0, len(text), 7)])
    store = TransactionStore()
    pipeline = IngestionPipeline(
        store, OpenAIStatementSource(client_factory=lambda: stub, model="m")
    )

    result = asyncio.run(pipeline.ingest(PDF))

    assert result.state is IngestionState.COMPLETED
    assert [(t.description, t.amount) for t in store] == [("Coffee", 5.5), ("Tea", 3.0)]
