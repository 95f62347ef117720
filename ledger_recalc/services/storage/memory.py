"""
In-Memory Record Store

Implements the full RecordStore capability over plain dicts: filters,
sorting, cursor pagination and generated ids. Used by the test suite
and by dry runs of the recalculation.

Every create/update is appended to `writes`, so callers can check
exactly which writes a run issued.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel

from ledger_recalc.services.storage.interface import (
    Collection,
    Condition,
    FilterOp,
    NotFoundError,
    QueryFilter,
    QueryPage,
    Record,
    RecordStore,
    SortSpec,
)


class WriteLogEntry(BaseModel):
    """One write issued against the in-memory store."""

    op: str
    collection: Collection
    record_id: str
    changes: dict[str, Any]


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _values_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    if isinstance(left, (int, float, Decimal)) and isinstance(right, (int, float, Decimal)):
        try:
            return Decimal(str(left)) == Decimal(str(right))
        except InvalidOperation:
            return False
    return left == right


def _matches(fields: dict[str, Any], condition: Condition) -> bool:
    value = fields.get(condition.field)
    if condition.op == FilterOp.EQUALS:
        return _values_equal(value, condition.value)

    left = _as_date(value)
    right = _as_date(condition.value)
    if left is None or right is None:
        return False
    if condition.op == FilterOp.ON_OR_AFTER:
        return left >= right
    return left < right


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (2, "")
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return (0, Decimal(str(value)))
    return (1, str(value))


def _passes(fields: dict[str, Any], query_filter: Optional[QueryFilter]) -> bool:
    if query_filter is None or query_filter.is_empty:
        return True
    if not all(_matches(fields, c) for c in query_filter.all_of):
        return False
    if query_filter.any_of and not any(_matches(fields, c) for c in query_filter.any_of):
        return False
    return True


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed implementation of the record store.

    Rows keep insertion order unless a sort is requested.
    """

    def __init__(self):
        self._data: dict[Collection, dict[str, dict[str, Any]]] = {
            collection: {} for collection in Collection
        }
        self.writes: list[WriteLogEntry] = []

    def seed(
        self,
        collection: Collection,
        fields: dict[str, Any],
        record_id: Optional[str] = None,
    ) -> str:
        """Insert a row directly, without recording a write."""
        record_id = record_id or str(uuid4())
        self._data[collection][record_id] = dict(fields)
        return record_id

    def get(self, collection: Collection, record_id: str) -> dict[str, Any]:
        """Return a copy of a stored row."""
        try:
            return dict(self._data[collection][record_id])
        except KeyError:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")

    def all(self, collection: Collection) -> list[Record]:
        """Return every row of a collection."""
        return [
            Record(id=record_id, data=dict(fields))
            for record_id, fields in self._data[collection].items()
        ]

    def writes_for(self, collection: Collection, op: Optional[str] = None) -> list[WriteLogEntry]:
        return [
            w for w in self.writes
            if w.collection == collection and (op is None or w.op == op)
        ]

    async def query(
        self,
        collection: Collection,
        filter: Optional[QueryFilter] = None,
        sort: Optional[list[SortSpec]] = None,
        cursor: Optional[str] = None,
        page_size: int = 100,
    ) -> QueryPage:
        rows = [
            Record(id=record_id, data=dict(fields))
            for record_id, fields in self._data[collection].items()
            if _passes(fields, filter)
        ]

        # Apply sorts last-to-first so the first sort wins
        for spec in reversed(sort or []):
            rows.sort(
                key=lambda r, f=spec.field: _sort_key(r.get(f)),
                reverse=spec.descending,
            )

        start = int(cursor) if cursor else 0
        end = start + page_size
        has_more = end < len(rows)
        return QueryPage(
            rows=rows[start:end],
            next_cursor=str(end) if has_more else None,
            has_more=has_more,
        )

    async def create(self, collection: Collection, fields: dict[str, Any]) -> str:
        record_id = str(uuid4())
        self._data[collection][record_id] = dict(fields)
        self.writes.append(WriteLogEntry(
            op="create",
            collection=collection,
            record_id=record_id,
            changes=dict(fields),
        ))
        return record_id

    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        if record_id not in self._data[collection]:
            raise NotFoundError(f"{collection.value} record not found: {record_id}")
        self._data[collection][record_id].update(fields)
        self.writes.append(WriteLogEntry(
            op="update",
            collection=collection,
            record_id=record_id,
            changes=dict(fields),
        ))
