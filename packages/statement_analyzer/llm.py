"""Streaming extraction via the OpenAI Responses API.

:class:`OpenAIStatementSource` is the production chunk source for the
ingestion pipeline: called with an :class:`~statement_analyzer.models.Upload`
it returns an async iterator of text fragments, in the order the model emits
them. Fragment boundaries are arbitrary.

No retries are attempted here; a failed stream surfaces as
:class:`ExtractionError` and the user re-submits.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from .logging_setup import get_logger
from .models import Upload
from .prompting import build_extraction_instructions, build_request_input

_MODEL_ENV = "STATEMENT_ANALYZER_MODEL"
_DEFAULT_MODEL = "gpt-5"

_TEXT_DELTA = "response.output_text.delta"
_FAILED_EVENTS = frozenset({"response.failed", "error"})

_logger = get_logger("statement_analyzer.llm")


class ExtractionError(RuntimeError):
    """The extraction collaborator failed (network, auth, quota, or model error)."""


class ChunkSource(Protocol):
    def __call__(self, upload: Upload) -> AsyncIterator[str]: ...


def resolve_model(model: str | None = None) -> str:
    if model and model.strip():
        return model.strip()
    env_val = os.getenv(_MODEL_ENV)
    return env_val.strip() if env_val and env_val.strip() else _DEFAULT_MODEL


def _failure_message(event: Any) -> str:
    msg = getattr(event, "message", None)
    if isinstance(msg, str) and msg:
        return msg
    err = getattr(getattr(event, "response", None), "error", None)
    detail = getattr(err, "message", None)
    if isinstance(detail, str) and detail:
        return detail
    return f"model stream reported {getattr(event, 'type', 'an error')}"


class OpenAIStatementSource:
    """Async chunk source backed by ``client.responses.create(stream=True)``.

    Parameters
    ----------
    client_factory:
        Zero-argument callable returning an ``AsyncOpenAI``-compatible client.
        Defaults to ``AsyncOpenAI`` (reads ``OPENAI_API_KEY``). The client is
        created per call so a missing key is reported per upload.
    model:
        Model name; falls back to ``STATEMENT_ANALYZER_MODEL`` then ``gpt-5``.
    currency:
        Optional currency context added to the instructions.
    """

    def __init__(
        self,
        *,
        client_factory: Callable[[], Any] | None = None,
        model: str | None = None,
        currency: str | None = None,
    ) -> None:
        self._client_factory = client_factory or AsyncOpenAI
        self._model = resolve_model(model)
        self._currency = currency

    @property
    def model(self) -> str:
        return self._model

    def __call__(self, upload: Upload) -> AsyncIterator[str]:
        return self._stream(upload)

    async def _stream(self, upload: Upload) -> AsyncIterator[str]:
        try:
            client = self._client_factory()
        except openai.OpenAIError as e:
            # Raised by the SDK when OPENAI_API_KEY is missing.
            raise ExtractionError(str(e)) from e

        _logger.info(
            "llm:request model=%s filename=%s bytes=%d",
            self._model,
            upload.filename,
            len(upload.content),
        )
        try:
            stream = await client.responses.create(
                model=self._model,
                instructions=build_extraction_instructions(self._currency),
                input=build_request_input(upload),
                stream=True,
            )
        except openai.APIError as e:
            raise ExtractionError(str(e)) from e

        try:
            async for event in stream:
                etype = getattr(event, "type", None)
                if etype == _TEXT_DELTA:
                    delta = getattr(event, "delta", "")
                    if delta:
                        yield delta
                elif etype in _FAILED_EVENTS:
                    raise ExtractionError(_failure_message(event))
        except openai.APIError as e:
            raise ExtractionError(str(e)) from e
        finally:
            await stream.close()


__all__ = ["ChunkSource", "ExtractionError", "OpenAIStatementSource", "resolve_model"]
