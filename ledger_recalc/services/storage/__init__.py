"""
Storage Services Package

Provides the abstract record store interface and its implementations.
Notion is the production backend; the in-memory store backs tests and
dry runs.
"""

from ledger_recalc.services.storage.interface import (
    Collection,
    Condition,
    DataSourceError,
    FilterOp,
    NotFoundError,
    QueryFilter,
    QueryPage,
    Record,
    RecordStore,
    SortSpec,
    StorageError,
)
from ledger_recalc.services.storage.memory import InMemoryRecordStore, WriteLogEntry
from ledger_recalc.services.storage.notion import NotionClient, NotionRecordStore
from ledger_recalc.services.storage.pagination import PaginatedQuery

__all__ = [
    # Interface
    "Collection",
    "Condition",
    "FilterOp",
    "QueryFilter",
    "QueryPage",
    "Record",
    "RecordStore",
    "SortSpec",
    "PaginatedQuery",
    # Exceptions
    "DataSourceError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryRecordStore",
    "WriteLogEntry",
    "NotionClient",
    "NotionRecordStore",
]
