"""
Paginated Query Sequences

A PaginatedQuery describes a query; it does not hold a position.
Every `async for` over it starts again from the first page, so the
same object can be iterated more than once. Iteration ends when the
store reports no more pages, and a cursor seen twice is treated as a
broken data source rather than looping forever.
"""

from typing import AsyncIterator, Optional

from ledger_recalc.services.storage.interface import (
    Collection,
    DataSourceError,
    QueryFilter,
    QueryPage,
    Record,
    RecordStore,
    SortSpec,
)


class PaginatedQuery:
    """Restartable, finite sequence of records for one query."""

    def __init__(
        self,
        store: RecordStore,
        collection: Collection,
        filter: Optional[QueryFilter] = None,
        sort: Optional[list[SortSpec]] = None,
        page_size: int = 100,
    ):
        self._store = store
        self.collection = collection
        self.filter = filter
        self.sort = sort
        self.page_size = page_size

    async def fetch_page(self, cursor: Optional[str] = None) -> QueryPage:
        """
        Fetch a single page.

        Raises:
            DataSourceError: If the store fails for any reason
        """
        try:
            return await self._store.query(
                self.collection,
                filter=self.filter,
                sort=self.sort,
                cursor=cursor,
                page_size=self.page_size,
            )
        except DataSourceError:
            raise
        except Exception as e:
            raise DataSourceError(
                f"Failed to fetch {self.collection.value} page: {e}"
            ) from e

    async def pages(self) -> AsyncIterator[QueryPage]:
        """Yield every page from the first one."""
        cursor: Optional[str] = None
        seen: set[str] = set()
        while True:
            page = await self.fetch_page(cursor)
            yield page
            if not page.has_more or not page.next_cursor:
                return
            if page.next_cursor in seen:
                raise DataSourceError(
                    f"{self.collection.value} query repeated cursor {page.next_cursor}"
                )
            seen.add(page.next_cursor)
            cursor = page.next_cursor

    async def _records(self) -> AsyncIterator[Record]:
        async for page in self.pages():
            for row in page.rows:
                yield row

    def __aiter__(self) -> AsyncIterator[Record]:
        return self._records()

    async def collect(self) -> list[Record]:
        """Read every record into a list."""
        return [row async for row in self]

    async def first(self) -> Optional[Record]:
        """Fetch only the first record, if any."""
        page = await self.fetch_page(None)
        return page.rows[0] if page.rows else None
