"""Tests for the monthly budget counter."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import NOW, seed_budget, seed_transaction

from ledger_recalc.errors import BudgetUpdateError
from ledger_recalc.models.audit import AuditEventType
from ledger_recalc.recalc import BudgetReconciler
from ledger_recalc.services.storage import Collection, InMemoryRecordStore


class BudgetWriteFailingStore(InMemoryRecordStore):
    """Store that refuses to create budget rows."""

    async def create(self, collection, fields):
        if collection == Collection.BUDGETS:
            raise RuntimeError("validation_error from backend")
        return await super().create(collection, fields)


class TestExpenseTotal:
    """Tests for summing today's expenses."""

    @pytest.mark.asyncio
    async def test_sums_positive_cad_expenses_of_today(self, store, window, audit):
        """Test that only today's expenses with a positive CAD amount count."""
        seed_transaction(store, "Expense", "Visa", cad="100")
        seed_transaction(store, "Expense", "Visa", cad="50.25")
        seed_transaction(store, "Expense", "Visa", usd="40")
        seed_transaction(store, "Expense", "Visa", cad="-5")
        seed_transaction(store, "Income", to_account="Chequing", cad="900")
        seed_transaction(store, "Expense", "Visa", cad="70", day="2026-10-18")

        reconciler = BudgetReconciler(store, audit, page_size=2)
        total = await reconciler.compute_today_expense_total(window)
        assert total == Decimal("150.25")

    @pytest.mark.asyncio
    async def test_expense_type_is_case_insensitive(self, store, window, audit):
        """Test that a lower-cased expense type is counted like the account debit."""
        seed_transaction(store, "expense", "Visa", cad="12")
        seed_transaction(store, " EXPENSE ", "Visa", cad="3")
        seed_transaction(store, "Expenses", "Visa", cad="99")

        reconciler = BudgetReconciler(store, audit)
        assert await reconciler.compute_today_expense_total(window) == Decimal("15")

    @pytest.mark.asyncio
    async def test_no_expenses(self, store, window, audit):
        """Test that a day without expenses totals 0."""
        reconciler = BudgetReconciler(store, audit)
        assert await reconciler.compute_today_expense_total(window) == Decimal("0")


class TestBudgetUpsert:
    """Tests for creating and updating the month's budget row."""

    @pytest.mark.asyncio
    async def test_creates_month_with_default_budget(self, store, window, audit):
        """Test that a missing month is created with 1000 and 1000 - total."""
        reconciler = BudgetReconciler(store, audit)
        outcome = await reconciler.upsert_monthly_budget(Decimal("150"), window, NOW)

        assert outcome.created is True
        row = store.get(Collection.BUDGETS, outcome.budget_id)
        assert row["Budget"] == Decimal("1000")
        assert row["Remaining"] == Decimal("850")
        assert row["Month"] == "2026-10"
        assert row["Name"] == "2026-10"
        assert row["Last Recalc"] == NOW.isoformat()
        assert audit.of_type(AuditEventType.BUDGET_CREATED)

    @pytest.mark.asyncio
    async def test_subtracts_from_remaining(self, store, window, audit):
        """Test that an existing remaining is reduced by today's total."""
        budget_id = seed_budget(store, remaining="600", last_recalc="2026-10-18T23:30:00+00:00")
        reconciler = BudgetReconciler(store, audit)

        outcome = await reconciler.upsert_monthly_budget(Decimal("45.50"), window, NOW)

        assert outcome.budget_id == budget_id
        assert outcome.previous_remaining == Decimal("600")
        row = store.get(Collection.BUDGETS, budget_id)
        assert row["Remaining"] == Decimal("554.50")
        assert row["Budget"] == Decimal("1000")
        assert row["Last Recalc"] == NOW.isoformat()
        assert not audit.of_type(AuditEventType.BUDGET_RECALCULATED_TWICE)

    @pytest.mark.asyncio
    async def test_uses_budget_when_remaining_missing(self, store, window, audit):
        """Test remaining = budget - total when no remaining was recorded."""
        budget_id = seed_budget(store, budget="1200")
        reconciler = BudgetReconciler(store, audit)

        await reconciler.upsert_monthly_budget(Decimal("200"), window, NOW)
        assert store.get(Collection.BUDGETS, budget_id)["Remaining"] == Decimal("1000")

    @pytest.mark.asyncio
    async def test_finds_row_by_name(self, store, window, audit):
        """Test that a row carrying the month only in its Name is found."""
        budget_id = seed_budget(store, remaining="300", by_name_only=True)
        reconciler = BudgetReconciler(store, audit)

        outcome = await reconciler.upsert_monthly_budget(Decimal("10"), window, NOW)
        assert outcome.budget_id == budget_id
        assert len(store.all(Collection.BUDGETS)) == 1

    @pytest.mark.asyncio
    async def test_other_month_is_not_touched(self, store, window, audit):
        """Test that last month's row is left alone and a new one is created."""
        old_id = seed_budget(store, month="2026-09", remaining="10")
        reconciler = BudgetReconciler(store, audit)

        outcome = await reconciler.upsert_monthly_budget(Decimal("1"), window, NOW)
        assert outcome.created is True
        assert store.get(Collection.BUDGETS, old_id)["Remaining"] == Decimal("10")

    @pytest.mark.asyncio
    async def test_same_day_rerun_is_flagged(self, store, window, audit):
        """Test that a second same-day run subtracts again and logs a warning."""
        budget_id = seed_budget(store, remaining="850", last_recalc="2026-10-19T08:00:00+00:00")
        reconciler = BudgetReconciler(store, audit)

        await reconciler.upsert_monthly_budget(Decimal("150"), window, NOW)

        assert store.get(Collection.BUDGETS, budget_id)["Remaining"] == Decimal("700")
        warnings = audit.of_type(AuditEventType.BUDGET_RECALCULATED_TWICE)
        assert len(warnings) == 1
        assert warnings[0].entity_id == budget_id


class TestReconcile:
    """Tests for the full budget step."""

    @pytest.mark.asyncio
    async def test_reconcile_end_to_end(self, store, window, audit):
        """Test 150 of expenses on a new month leaves 850."""
        seed_transaction(store, "Expense", "Visa", cad="100")
        seed_transaction(store, "Expense", "Visa", cad="50")
        reconciler = BudgetReconciler(store, audit, default_budget=Decimal("1000"))

        outcome = await reconciler.reconcile(window, NOW)
        assert outcome.expense_total == Decimal("150")
        assert outcome.remaining == Decimal("850")

    @pytest.mark.asyncio
    async def test_failure_is_wrapped(self, window, audit):
        """Test that any budget failure surfaces as BudgetUpdateError."""
        store = BudgetWriteFailingStore()
        reconciler = BudgetReconciler(store, audit)

        with pytest.raises(BudgetUpdateError) as exc_info:
            await reconciler.reconcile(window, datetime(2026, 10, 19, tzinfo=timezone.utc))
        assert "2026-10" in str(exc_info.value)
