"""Services package."""

from ledger_recalc.services.storage import (
    DataSourceError,
    InMemoryRecordStore,
    NotFoundError,
    NotionRecordStore,
    RecordStore,
    StorageError,
)

__all__ = [
    "DataSourceError",
    "InMemoryRecordStore",
    "NotFoundError",
    "NotionRecordStore",
    "RecordStore",
    "StorageError",
]
