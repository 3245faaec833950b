"""Ingestion of one uploaded statement into a :class:`TransactionStore`.

State machine::

    IDLE -> SUBMITTING -> STREAMING -> COMPLETED
                 \\            \\
                  +-> FAILED <-+

- A file that is not a PDF goes straight to ``FAILED`` and returns to
  ``IDLE`` after ``recovery_delay`` seconds unless something else happened
  in the meantime. While a session is running, a non-PDF is only reported
  back to the caller; the running session is not disturbed.
- A valid submission empties the store, then streams. Every chunk that
  completes at least one valid record produces exactly one
  ``append_batch`` call, so observers see one update per network chunk, not
  one per record.
- At end of stream the reassembler is flushed so a final record without a
  trailing newline is still accepted.
- A collaborator exception moves to ``FAILED``. Transactions already
  appended stay in the store.

Each ``ingest`` call runs in its own session with a cancellation token.
Starting a new session cancels the previous token: the superseded session
stops reading its stream, closes it, and never touches the store or the
pipeline state again. A task cancelled from outside (``Task.cancel``, a
``wait_for`` timeout) returns the pipeline to ``IDLE`` before re-raising.

Everything between two awaits is synchronous, so store mutations are
serialized by the event loop and no locking is involved.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import PurePath

from .decoder import decode_line
from .identity import IdentityAssigner, new_session_key
from .kvstore import KeyValueStore
from .llm import ChunkSource
from .logging_setup import get_logger
from .models import IngestionState, Transaction, Upload
from .reassembler import StreamReassembler
from .store import TransactionStore

_logger = get_logger("statement_analyzer.pipeline")

PDF_MIME_TYPE = "application/pdf"
INVALID_FILE_MESSAGE = "Please upload a valid PDF file."
FAILURE_PREFIX = "Failed to analyze statement."
DEFAULT_RECOVERY_DELAY_SEC: float = 3.0


# ---- Events and results ------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StateChanged:
    state: IngestionState
    message: str | None = None


@dataclass(frozen=True, slots=True)
class BatchAppended:
    transactions: tuple[Transaction, ...]
    total: int


type IngestionEvent = StateChanged | BatchAppended
type Listener = Callable[[IngestionEvent], None]


@dataclass(frozen=True, slots=True)
class IngestionResult:
    state: IngestionState
    accepted: int = 0
    rejected: int = 0
    error: str | None = None
    superseded: bool = False


@dataclass(slots=True)
class _Session:
    key: str
    cancelled: bool = False
    accepted: int = 0
    rejected: int = 0
    lines: int = field(default=0, repr=False)


def validate_upload(upload: Upload) -> str | None:
    """Return a user-facing error message, or ``None`` when ``upload`` is a PDF.

    Accepts the ``application/pdf`` mime type or a ``.pdf`` filename suffix.
    """

    mime = (upload.mime_type or "").split(";", 1)[0].strip().lower()
    if mime == PDF_MIME_TYPE:
        return None
    if PurePath(upload.filename or "").suffix.lower() == ".pdf":
        return None
    return INVALID_FILE_MESSAGE


class IngestionPipeline:
    """Drive a chunk source through reassembly, decoding, and identity assignment.

    Parameters
    ----------
    store:
        The store populated by this pipeline. It is reset at the start of
        every valid submission.
    source:
        Callable returning an async iterator of text chunks for an upload
        (see :class:`~statement_analyzer.llm.OpenAIStatementSource`).
    notes:
        Optional key-value store used to restore saved notes onto new
        transactions.
    listener:
        Optional callback receiving :class:`StateChanged` and
        :class:`BatchAppended` events.
    recovery_delay:
        Seconds before an invalid-file failure returns to ``IDLE``.
    """

    def __init__(
        self,
        store: TransactionStore,
        source: ChunkSource,
        *,
        notes: KeyValueStore | None = None,
        listener: Listener | None = None,
        recovery_delay: float = DEFAULT_RECOVERY_DELAY_SEC,
    ) -> None:
        self._store = store
        self._source = source
        self._notes = notes
        self._listener = listener
        self._recovery_delay = recovery_delay

        self._state = IngestionState.IDLE
        self._message: str | None = None
        self._session: _Session | None = None
        self._task: asyncio.Task[IngestionResult] | None = None
        self._recovery: asyncio.TimerHandle | None = None

    # ---- Observable state ---------------------------------------------------

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def error_message(self) -> str | None:
        return self._message

    @property
    def is_busy(self) -> bool:
        return self._state in (IngestionState.SUBMITTING, IngestionState.STREAMING)

    # ---- Commands -----------------------------------------------------------

    def start(self, upload: Upload) -> asyncio.Task[IngestionResult]:
        """Schedule :meth:`ingest` as a task, cancelling any previously started one."""

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self.ingest(upload))
        return self._task

    def cancel(self) -> None:
        """Abort the active session, keeping whatever it already appended."""

        if self._session is None:
            return
        self._session.cancelled = True
        _logger.info("ingest:cancelled session=%s", self._session.key)
        self._session = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._set_state(IngestionState.IDLE)

    def reset(self) -> None:
        """Cancel any session, empty the store, and return to ``IDLE``."""

        self.cancel()
        self._cancel_recovery()
        self._store.reset()
        self._set_state(IngestionState.IDLE)

    async def ingest(self, upload: Upload) -> IngestionResult:
        """Ingest ``upload`` end to end and return a summary of the session."""

        invalid = validate_upload(upload)
        if invalid is not None:
            return self._reject(upload, invalid)

        session = self._open_session()
        _logger.info("ingest:start session=%s filename=%s", session.key, upload.filename)
        self._store.reset()
        self._set_state(IngestionState.SUBMITTING)

        reassembler = StreamReassembler()
        assigner = IdentityAssigner(session.key, notes=self._notes)
        stream: AsyncIterator[str] | None = None
        try:
            stream = self._source(upload)
            async for chunk in stream:
                if session.cancelled:
                    break
                if self._state is IngestionState.SUBMITTING:
                    self._set_state(IngestionState.STREAMING)
                self._append(session, assigner, reassembler.feed(chunk))

            if session.cancelled:
                return self._superseded(session)

            if self._state is IngestionState.SUBMITTING:
                self._set_state(IngestionState.STREAMING)
            residual = reassembler.flush()
            if residual is not None:
                self._append(session, assigner, [residual])
        except asyncio.CancelledError:
            if self._session is session:
                _logger.info("ingest:cancelled session=%s", session.key)
                session.cancelled = True
                self._session = None
                self._set_state(IngestionState.IDLE)
            raise
        except Exception as e:
            if session.cancelled:
                return self._superseded(session)
            message = f"{FAILURE_PREFIX} {e}"
            _logger.error(
                "ingest:failed session=%s accepted=%d error=%s",
                session.key,
                session.accepted,
                e.__class__.__name__,
            )
            self._session = None
            self._set_state(IngestionState.FAILED, message)
            return IngestionResult(
                IngestionState.FAILED,
                accepted=session.accepted,
                rejected=session.rejected,
                error=message,
            )
        finally:
            aclose = getattr(stream, "aclose", None) if stream is not None else None
            if aclose is not None:
                await aclose()

        _logger.info(
            "ingest:done session=%s lines=%d accepted=%d rejected=%d",
            session.key,
            session.lines,
            session.accepted,
            session.rejected,
        )
        self._session = None
        self._set_state(IngestionState.COMPLETED)
        return IngestionResult(
            IngestionState.COMPLETED, accepted=session.accepted, rejected=session.rejected
        )

    # ---- Internals ----------------------------------------------------------

    def _reject(self, upload: Upload, message: str) -> IngestionResult:
        _logger.warning("ingest:invalid_upload filename=%s", upload.filename)
        if self._session is not None:
            # A running extraction is left alone; only the caller hears about it.
            return IngestionResult(self._state, error=message)
        self._cancel_recovery()
        self._set_state(IngestionState.FAILED, message)
        self._schedule_recovery()
        return IngestionResult(IngestionState.FAILED, error=message)

    def _open_session(self) -> _Session:
        if self._session is not None:
            self._session.cancelled = True
            _logger.info("ingest:superseding session=%s", self._session.key)
        self._cancel_recovery()
        session = _Session(key=new_session_key())
        self._session = session
        return session

    def _append(
        self, session: _Session, assigner: IdentityAssigner, lines: Iterable[str]
    ) -> None:
        batch: list[Transaction] = []
        for line in lines:
            if not line.strip():
                continue
            session.lines += 1
            record = decode_line(line)
            if record is None:
                session.rejected += 1
                continue
            batch.append(assigner.assign(record))
        if not batch:
            return

        self._store.append_batch(batch)
        session.accepted += len(batch)
        _logger.debug(
            "ingest:batch session=%s appended=%d total=%d",
            session.key,
            len(batch),
            len(self._store),
        )
        self._emit(BatchAppended(transactions=tuple(batch), total=len(self._store)))

    def _superseded(self, session: _Session) -> IngestionResult:
        _logger.info("ingest:superseded session=%s accepted=%d", session.key, session.accepted)
        return IngestionResult(
            self._state,
            accepted=session.accepted,
            rejected=session.rejected,
            superseded=True,
        )

    def _set_state(self, state: IngestionState, message: str | None = None) -> None:
        if state is self._state and message == self._message:
            return
        self._state = state
        self._message = message
        self._emit(StateChanged(state=state, message=message))

    def _emit(self, event: IngestionEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    def _schedule_recovery(self) -> None:
        loop = asyncio.get_running_loop()
        self._recovery = loop.call_later(self._recovery_delay, self._recover)

    def _cancel_recovery(self) -> None:
        if self._recovery is not None:
            self._recovery.cancel()
            self._recovery = None

    def _recover(self) -> None:
        self._recovery = None
        if self._state is IngestionState.FAILED:
            self._set_state(IngestionState.IDLE)


__all__ = [
    "BatchAppended",
    "DEFAULT_RECOVERY_DELAY_SEC",
    "FAILURE_PREFIX",
    "INVALID_FILE_MESSAGE",
    "IngestionEvent",
    "IngestionPipeline",
    "IngestionResult",
    "StateChanged",
    "validate_upload",
]
