"""Decode one line of model output into a :class:`~statement_analyzer.models.RawRecord`.

The model is asked to emit one minified JSON object per line, but nothing
guarantees it: prose, markdown fences, truncated objects, and objects missing
fields all show up in practice. Every such line is a rejection, never an
error. Rejections are logged at ``WARNING`` and the caller moves on.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import RawRecord

_logger = get_logger("statement_analyzer.decoder")

# Cap rejected-line echoes so a runaway line does not flood the log.
_LOG_PREVIEW_CHARS = 200


def _preview(line: str) -> str:
    s = line.strip()
    if len(s) <= _LOG_PREVIEW_CHARS:
        return s
    return s[: _LOG_PREVIEW_CHARS - 3] + "..."


def _reject(reason: str, line: str) -> None:
    _logger.warning('decode:rejected reason=%s line="%s"', reason, _preview(line))


def decode_line(line: str) -> RawRecord | None:
    """Return the validated record for ``line`` or ``None`` when it is rejected.

    - Blank and whitespace-only lines return ``None`` without logging.
    - Invalid JSON, JSON that is not an object, and objects failing
      :class:`RawRecord` validation return ``None`` and log the line.
    """

    text = line.strip()
    if not text:
        return None

    try:
        payload: Any = json.loads(text)
    except json.JSONDecodeError:
        _reject("invalid_json", text)
        return None

    if not isinstance(payload, dict):
        _reject("not_an_object", text)
        return None

    try:
        return RawRecord.model_validate(payload)
    except ValidationError as e:
        fields = ",".join(
            sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        )
        _reject(f"invalid_fields:{fields or 'unknown'}", text)
        return None


__all__ = ["decode_line"]
