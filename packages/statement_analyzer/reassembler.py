"""Reassemble newline-delimited records from arbitrarily chunked text.

Chunk boundaries from the streaming API bear no relation to record
boundaries: a chunk may end mid-field, mid-number, or right before the
newline. :class:`StreamReassembler` keeps the unterminated tail of the text
seen so far (the carryover) and only ever hands out complete lines.
"""

from __future__ import annotations


class StreamReassembler:
    """Split a sequence of text chunks into complete lines.

    Contract:
    - ``feed`` returns the lines completed by ``chunk`` in source order. A
      chunk without a newline only grows the carryover and returns ``[]``.
    - The final segment after the last newline is always deferred, even when
      it is empty; an empty segment and a genuinely incomplete line are
      indistinguishable until more text (or end of stream) arrives.
    - ``flush`` ends the session: it returns the residual carryover when it
      holds anything other than whitespace and closes the reassembler.
    """

    __slots__ = ("_buffer", "_closed")

    def __init__(self) -> None:
        self._buffer = ""
        self._closed = False

    @property
    def carryover(self) -> str:
        return self._buffer

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str) -> list[str]:
        if self._closed:
            raise RuntimeError("StreamReassembler is closed; start a new session")
        if not chunk:
            return []

        parts = (self._buffer + chunk).split("\n")
        self._buffer = parts.pop()
        return parts

    def flush(self) -> str | None:
        """Close the reassembler and return the residual line, if any."""

        if self._closed:
            return None
        residual, self._buffer = self._buffer, ""
        self._closed = True
        return residual if residual.strip() else None


__all__ = ["StreamReassembler"]
