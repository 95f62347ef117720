"""Tests for the in-memory record store and paginated query sequences."""

from decimal import Decimal
from typing import Optional

import pytest

from ledger_recalc.services.storage import (
    Collection,
    Condition,
    DataSourceError,
    FilterOp,
    InMemoryRecordStore,
    NotFoundError,
    PaginatedQuery,
    QueryFilter,
    QueryPage,
    Record,
    SortSpec,
)


class RepeatingCursorStore(InMemoryRecordStore):
    """Store whose every page claims there is more, with the same cursor."""

    async def query(self, collection, filter=None, sort=None, cursor=None, page_size=100):
        return QueryPage(rows=[Record(id="x")], next_cursor="same", has_more=True)


class BrokenStore(InMemoryRecordStore):
    """Store whose reads always fail."""

    def __init__(self, fail_on_cursor: Optional[str] = None):
        super().__init__()
        self.fail_on_cursor = fail_on_cursor

    async def query(self, collection, filter=None, sort=None, cursor=None, page_size=100):
        if self.fail_on_cursor is None or cursor == self.fail_on_cursor:
            raise RuntimeError("connection reset")
        return await super().query(collection, filter, sort, cursor, page_size)


class TestInMemoryRecordStore:
    """Tests for the dict-backed store."""

    @pytest.mark.asyncio
    async def test_date_window_filter(self, store):
        """Test on_or_after / before select exactly one day."""
        for day in ("2026-10-18", "2026-10-19", "2026-10-19T23:59:00", "2026-10-20"):
            store.seed(Collection.TRANSACTIONS, {"Date": day})

        page = await store.query(
            Collection.TRANSACTIONS,
            filter=QueryFilter(all_of=[
                Condition(field="Date", op=FilterOp.ON_OR_AFTER, value="2026-10-19"),
                Condition(field="Date", op=FilterOp.BEFORE, value="2026-10-20"),
            ]),
        )
        assert [r.get("Date") for r in page.rows] == ["2026-10-19", "2026-10-19T23:59:00"]

    @pytest.mark.asyncio
    async def test_any_of_filter(self, store):
        """Test that any_of matches either field."""
        store.seed(Collection.BUDGETS, {"Name": "2026-10"})
        store.seed(Collection.BUDGETS, {"Month": "2026-10", "Name": "October"})
        store.seed(Collection.BUDGETS, {"Month": "2026-09"})

        page = await store.query(
            Collection.BUDGETS,
            filter=QueryFilter(any_of=[
                Condition(field="Month", value="2026-10"),
                Condition(field="Name", value="2026-10"),
            ]),
        )
        assert len(page.rows) == 2

    @pytest.mark.asyncio
    async def test_numeric_equality_ignores_scale(self, store):
        """Test that 20 equals 20.00."""
        store.seed(Collection.TRANSACTIONS, {"CAD Amount": Decimal("20.00")})
        page = await store.query(
            Collection.TRANSACTIONS,
            filter=QueryFilter(all_of=[Condition(field="CAD Amount", value=20)]),
        )
        assert len(page.rows) == 1

    @pytest.mark.asyncio
    async def test_cursor_pagination(self, store):
        """Test pages chain through next_cursor until has_more is false."""
        for i in range(5):
            store.seed(Collection.ACCOUNTS, {"Name": f"A{i}"})

        first = await store.query(Collection.ACCOUNTS, page_size=2)
        assert first.has_more and first.next_cursor == "2"
        last = await store.query(Collection.ACCOUNTS, cursor="4", page_size=2)
        assert not last.has_more
        assert last.next_cursor is None
        assert [r.get("Name") for r in last.rows] == ["A4"]

    @pytest.mark.asyncio
    async def test_sort(self, store):
        """Test descending numeric sort."""
        for balance in ("5", "50", "10"):
            store.seed(Collection.ACCOUNTS, {"Current Balance": Decimal(balance)})
        page = await store.query(
            Collection.ACCOUNTS,
            sort=[SortSpec(field="Current Balance", descending=True)],
        )
        assert [r.get("Current Balance") for r in page.rows] == [
            Decimal("50"), Decimal("10"), Decimal("5")
        ]

    @pytest.mark.asyncio
    async def test_create_and_update_are_logged(self, store):
        """Test that writes are recorded and seeds are not."""
        store.seed(Collection.ACCOUNTS, {"Name": "A"}, record_id="a")
        new_id = await store.create(Collection.DAILY_BALANCES, {"Account": "A"})
        await store.update(Collection.ACCOUNTS, "a", {"Current Balance": Decimal("1")})

        assert [w.op for w in store.writes] == ["create", "update"]
        assert store.get(Collection.DAILY_BALANCES, new_id) == {"Account": "A"}
        assert store.get(Collection.ACCOUNTS, "a")["Current Balance"] == Decimal("1")

    @pytest.mark.asyncio
    async def test_update_unknown_record(self, store):
        """Test that updating a missing id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await store.update(Collection.ACCOUNTS, "missing", {"Name": "x"})


class TestPaginatedQuery:
    """Tests for the restartable paginated sequence."""

    @pytest.mark.asyncio
    async def test_reads_every_page(self, store):
        """Test that iteration follows cursors to the end."""
        for i in range(7):
            store.seed(Collection.ACCOUNTS, {"Name": f"A{i}"})
        query = PaginatedQuery(store, Collection.ACCOUNTS, page_size=3)

        pages = [page async for page in query.pages()]
        assert [len(p.rows) for p in pages] == [3, 3, 1]
        assert len(await query.collect()) == 7

    @pytest.mark.asyncio
    async def test_iteration_is_restartable(self, store):
        """Test that a second pass starts again from the first row."""
        for i in range(3):
            store.seed(Collection.ACCOUNTS, {"Name": f"A{i}"})
        query = PaginatedQuery(store, Collection.ACCOUNTS, page_size=2)

        first_pass = [r.id async for r in query]
        second_pass = [r.id async for r in query]
        assert first_pass == second_pass
        assert len(first_pass) == 3

    @pytest.mark.asyncio
    async def test_empty_collection(self, store):
        """Test that an empty collection yields nothing."""
        query = PaginatedQuery(store, Collection.ACCOUNTS)
        assert await query.collect() == []
        assert await query.first() is None

    @pytest.mark.asyncio
    async def test_repeated_cursor_is_an_error(self):
        """Test that a cursor loop is reported instead of spinning forever."""
        query = PaginatedQuery(RepeatingCursorStore(), Collection.ACCOUNTS)
        with pytest.raises(DataSourceError):
            await query.collect()

    @pytest.mark.asyncio
    async def test_fetch_failure_becomes_data_source_error(self):
        """Test that a store failure surfaces as DataSourceError."""
        query = PaginatedQuery(BrokenStore(), Collection.ACCOUNTS)
        with pytest.raises(DataSourceError) as exc_info:
            await query.collect()
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_failure_on_later_page(self):
        """Test that a failure after the first page still raises."""
        store = BrokenStore(fail_on_cursor="1")
        store.seed(Collection.ACCOUNTS, {"Name": "A"})
        store.seed(Collection.ACCOUNTS, {"Name": "B"})
        query = PaginatedQuery(store, Collection.ACCOUNTS, page_size=1)

        seen = []
        with pytest.raises(DataSourceError):
            async for record in query:
                seen.append(record.get("Name"))
        assert seen == ["A"]
