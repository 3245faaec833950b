"""Data models and type aliases for ``statement_analyzer``.

Two layers are modelled here:

- :class:`RawRecord` is the validated shape of one line of model output. It is
  a strict pydantic model so that structural checks (string fields, numeric
  amount, one of two type tags) live in one place and rejections carry a
  readable reason.
- :class:`Transaction` is the durable entity held by the transaction store.
  It is a frozen dataclass; edits to ``category``/``notes`` replace the value
  inside the store rather than mutating it, so the ``id`` can never change.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Shared literals
# ---------------------------------------------------------------------------

type TransactionType = Literal["debit", "credit"]

UNCATEGORIZED: str = "Uncategorized"


# ---------------------------------------------------------------------------
# Decoded line payload
# ---------------------------------------------------------------------------


class RawRecord(BaseModel):
    """One structurally valid transaction payload, prior to identity assignment.

    Extra keys in the source object are ignored. ``amount`` accepts JSON
    integers and floats but not booleans or numeric strings, and must be
    finite. ``type`` is compared after trimming and lower-casing.
    """

    model_config = ConfigDict(strict=True, extra="ignore", frozen=True)

    date: str
    description: str
    amount: float
    type: TransactionType

    @field_validator("date", "description")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_bool(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("amount must be a number")
        return v

    @field_validator("amount")
    @classmethod
    def _finite_magnitude(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be finite")
        # Sign is carried by ``type``; keep the magnitude only.
        return abs(v)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v


# ---------------------------------------------------------------------------
# Durable entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A transaction accepted into a :class:`~statement_analyzer.store.TransactionStore`.

    Attributes
    ----------
    id:
        Session-unique identifier assigned by the identity assigner.
    date:
        ISO ``YYYY-MM-DD`` string as emitted by the model (not calendar
        validated).
    amount:
        Non-negative magnitude; direction is given by ``type``.
    category:
        ``"Uncategorized"`` or the name of a category in the current set.
    notes:
        Optional free-text annotation.
    """

    id: str
    date: str
    description: str
    amount: float
    type: TransactionType
    category: str = UNCATEGORIZED
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Upload:
    """A user-selected document handed to the ingestion pipeline."""

    filename: str
    content: bytes
    mime_type: str | None = None


class IngestionState(enum.StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


__all__ = [
    "Category",
    "IngestionState",
    "RawRecord",
    "Transaction",
    "TransactionType",
    "UNCATEGORIZED",
    "Upload",
]
