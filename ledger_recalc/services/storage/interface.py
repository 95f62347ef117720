"""
Abstract Record Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the recalculation logic independent of Notion
2. Use in-memory storage for testing and dry runs
3. Add caching layers transparently

The interface is intentionally small - paginated query, create, update.
Records are flat: every field value is a plain Python value (str,
Decimal, bool, ISO date string or None). Backends are responsible for
flattening their own payload formats.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Collection(str, Enum):
    """Logical collections the recalculation reads and writes."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    DAILY_BALANCES = "daily_balances"
    BUDGETS = "budgets"


class FilterOp(str, Enum):
    """Comparison operators understood by every backend."""
    EQUALS = "equals"
    ON_OR_AFTER = "on_or_after"
    BEFORE = "before"


class Condition(BaseModel):
    """A single field comparison."""

    field: str
    op: FilterOp = FilterOp.EQUALS
    value: Any = None


class QueryFilter(BaseModel):
    """
    Conditions combined for a query.

    all_of conditions must all hold; if any_of is non-empty, at least
    one of them must hold as well.
    """

    all_of: list[Condition] = Field(default_factory=list)
    any_of: list[Condition] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.all_of and not self.any_of


class SortSpec(BaseModel):
    """Sort order for a query."""

    field: str
    descending: bool = False


class Record(BaseModel):
    """A row as returned by the store, before domain validation."""

    id: str
    data: dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)


class QueryPage(BaseModel):
    """One page of query results."""

    rows: list[Record] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class RecordStore(ABC):
    """
    Abstract interface for record store operations.

    Any storage implementation (Notion, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def query(
        self,
        collection: Collection,
        filter: Optional[QueryFilter] = None,
        sort: Optional[list[SortSpec]] = None,
        cursor: Optional[str] = None,
        page_size: int = 100,
    ) -> QueryPage:
        """
        Fetch one page of records.

        Args:
            collection: Collection to read
            filter: Optional conditions the rows must satisfy
            sort: Optional sort order
            cursor: Cursor returned by the previous page, None for the first
            page_size: Maximum rows in the page

        Returns:
            The page with its continuation cursor

        Raises:
            StorageError: If the fetch fails
        """
        pass

    @abstractmethod
    async def create(self, collection: Collection, fields: dict[str, Any]) -> str:
        """
        Create a record.

        Returns:
            The id of the created record

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Update some fields of an existing record.

        Raises:
            StorageError: If the write fails
            NotFoundError: If the record doesn't exist
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DataSourceError(StorageError):
    """A paginated fetch failed. Fatal to the current run."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass
