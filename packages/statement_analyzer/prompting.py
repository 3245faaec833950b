"""Prompt construction for statement extraction.

This module builds:
- The system instructions asking for one minified JSON object per line.
- The Responses API ``input`` payload carrying the PDF as an ``input_file``.
"""

from __future__ import annotations

import base64
from typing import Any

from .models import Upload

RECORD_FIELDS: tuple[str, ...] = ("date", "description", "amount", "type")

_INSTRUCTIONS = """\
You are an expert data extraction assistant specializing in financial documents. \
Your single task is to analyze the provided PDF bank statement and extract every transaction.

Rules:
1. Process the entire document, from the first page to the last. Do not stop partway through.
2. Output format:
   - Each transaction is a single, minified JSON object on its own line.
   - Output nothing else: no explanations, no summaries, no markdown fences.
3. Each JSON object has exactly these keys:
   - "date": string, "YYYY-MM-DD".
   - "description": string with the transaction details.
   - "amount": number, the positive transaction value without currency symbols.
   - "type": string, either "debit" or "credit".
"""


def build_extraction_instructions(currency: str | None = None) -> str:
    """Return the extraction instructions, with an optional currency context line."""

    text = _INSTRUCTIONS
    if currency and currency.strip():
        text += (
            f"4. All amounts are in {currency.strip()}. "
            'Do not include currency symbols or codes in "amount".\n'
        )
    return text


def build_request_input(upload: Upload) -> list[dict[str, Any]]:
    """Return the Responses API ``input`` list for ``upload``.

    The document travels inline as a base64 data URL; the mime type defaults
    to ``application/pdf`` because only PDFs pass upload validation.
    """

    mime = upload.mime_type or "application/pdf"
    encoded = base64.b64encode(upload.content).decode("ascii")
    return [
        {
            "role": "user",
            "content": [
                {
                    "type": "input_file",
                    "filename": upload.filename,
                    "file_data": f"data:{mime};base64,{encoded}",
                },
                {"type": "input_text", "text": "Extract every transaction. Begin."},
            ],
        }
    ]


__all__ = ["RECORD_FIELDS", "build_extraction_instructions", "build_request_input"]
