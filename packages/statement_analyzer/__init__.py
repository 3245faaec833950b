"""Public interface for the ``statement_analyzer`` package.

This module re-exports the stable import surface: the streaming line parser
(decoder + reassembler), identity assignment, the transaction store, the
ingestion pipeline, and the application-state object built on top of them.
There is no runtime logic here.
"""

from .app import StatementAnalyzer
from .categories import DEFAULT_CATEGORIES, CategorySet
from .decoder import decode_line
from .export import to_csv, write_csv
from .identity import IdentityAssigner, note_key
from .kvstore import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore, StoreResult
from .llm import ExtractionError, OpenAIStatementSource
from .models import (
    UNCATEGORIZED,
    Category,
    IngestionState,
    RawRecord,
    Transaction,
    TransactionType,
    Upload,
)
from .pipeline import (
    BatchAppended,
    IngestionPipeline,
    IngestionResult,
    StateChanged,
    validate_upload,
)
from .reassembler import StreamReassembler
from .store import TransactionStore
from .views import TransactionFilter, filter_transactions, sort_transactions, summarize

__all__ = [
    # Core parsing and reconciliation
    "decode_line",
    "StreamReassembler",
    "IdentityAssigner",
    "note_key",
    "TransactionStore",
    "IngestionPipeline",
    "IngestionResult",
    "BatchAppended",
    "StateChanged",
    "validate_upload",
    # Collaborators
    "OpenAIStatementSource",
    "ExtractionError",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SqlKeyValueStore",
    "StoreResult",
    "CategorySet",
    "DEFAULT_CATEGORIES",
    "TransactionFilter",
    "filter_transactions",
    "sort_transactions",
    "summarize",
    "to_csv",
    "write_csv",
    "StatementAnalyzer",
    # Models / types
    "RawRecord",
    "Transaction",
    "TransactionType",
    "Category",
    "Upload",
    "IngestionState",
    "UNCATEGORIZED",
]
