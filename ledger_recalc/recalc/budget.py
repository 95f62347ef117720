"""
Budget Reconciler

Sums today's CAD expenses and applies the total to the current month's
budget row, creating the row with the default budget on the first run
of a month.

KNOWN LIMITATION: `remaining` is reduced by the whole day's expense
total on every run. Two runs on the same day subtract that day's
expenses twice. The behaviour is kept as is; a run that sees a
`Last Recalc` already stamped today logs BUDGET_RECALCULATED_TWICE so
the double subtraction is visible to whoever reads the audit log.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ledger_recalc.audit import AuditLogger
from ledger_recalc.errors import BudgetUpdateError, ValidationError
from ledger_recalc.models.ledger import (
    Budget,
    BudgetFields,
    DayWindow,
    Transaction,
    TransactionFields,
    TransactionType,
)
from ledger_recalc.services.storage import (
    Collection,
    Condition,
    FilterOp,
    PaginatedQuery,
    QueryFilter,
    RecordStore,
)


class BudgetOutcome(BaseModel):
    """Result of one budget upsert."""

    budget_id: str
    month: str
    created: bool
    expense_total: Decimal
    previous_remaining: Optional[Decimal] = None
    remaining: Decimal


class BudgetReconciler:
    """Maintains the monthly budget counter."""

    def __init__(
        self,
        store: RecordStore,
        audit_logger: AuditLogger,
        default_budget: Decimal = Decimal("1000"),
        page_size: int = 100,
    ):
        self._store = store
        self._audit = audit_logger
        self._default_budget = default_budget
        self._page_size = page_size

    async def compute_today_expense_total(self, window: DayWindow) -> Decimal:
        """
        Sum the CAD amount of today's expenses with a positive CAD amount.

        The type is matched the way the delta step matches it (trimmed,
        case-insensitive), so the store query only narrows by date.

        Raises:
            DataSourceError: If any page fetch fails
        """
        query = PaginatedQuery(
            self._store,
            Collection.TRANSACTIONS,
            filter=QueryFilter(all_of=[
                Condition(field=TransactionFields.DATE, op=FilterOp.ON_OR_AFTER,
                          value=window.today.isoformat()),
                Condition(field=TransactionFields.DATE, op=FilterOp.BEFORE,
                          value=window.tomorrow.isoformat()),
            ]),
            page_size=self._page_size,
        )

        total = Decimal("0")
        async for record in query:
            try:
                transaction = Transaction.from_record(record)
            except ValidationError:
                continue
            if transaction.type != TransactionType.EXPENSE:
                continue
            if transaction.cad_amount > 0:
                total += transaction.cad_amount
        return total

    async def find_budget(self, month: str) -> Optional[Budget]:
        """Find the budget row whose Month or Name equals `month`."""
        query = PaginatedQuery(
            self._store,
            Collection.BUDGETS,
            filter=QueryFilter(any_of=[
                Condition(field=BudgetFields.MONTH, value=month),
                Condition(field=BudgetFields.NAME, value=month),
            ]),
            page_size=1,
        )
        record = await query.first()
        if record is None:
            return None
        return Budget.from_record(record, month)

    async def upsert_monthly_budget(
        self,
        expense_total: Decimal,
        window: DayWindow,
        now: Optional[datetime] = None,
    ) -> BudgetOutcome:
        """
        Apply today's expense total to the budget row of the window's month.

        New row: budget = default, remaining = default - total.
        Existing row: remaining -= total, or budget - total when the row
        has no remaining recorded yet. Last Recalc is stamped either way.
        """
        now = now or datetime.now(timezone.utc)
        month = window.month
        stamp = now.isoformat()

        budget = await self.find_budget(month)

        if budget is None:
            remaining = self._default_budget - expense_total
            budget_id = await self._store.create(
                Collection.BUDGETS,
                {
                    BudgetFields.NAME: month,
                    BudgetFields.MONTH: month,
                    BudgetFields.BUDGET: self._default_budget,
                    BudgetFields.REMAINING: remaining,
                    BudgetFields.LAST_RECALC: stamp,
                },
            )
            outcome = BudgetOutcome(
                budget_id=budget_id,
                month=month,
                created=True,
                expense_total=expense_total,
                remaining=remaining,
            )
        else:
            if budget.last_recalc is not None and budget.last_recalc.date() == window.today:
                self._audit.log_budget_recalculated_twice(
                    budget_id=budget.id,
                    month=month,
                    last_recalc=budget.last_recalc.isoformat(),
                )

            base = budget.remaining if budget.remaining is not None else budget.budget
            remaining = base - expense_total
            await self._store.update(
                Collection.BUDGETS,
                budget.id,
                {
                    BudgetFields.REMAINING: remaining,
                    BudgetFields.LAST_RECALC: stamp,
                },
            )
            outcome = BudgetOutcome(
                budget_id=budget.id,
                month=month,
                created=False,
                expense_total=expense_total,
                previous_remaining=base,
                remaining=remaining,
            )

        self._audit.log_budget_written(
            created=outcome.created,
            budget_id=outcome.budget_id,
            month=month,
            previous_remaining=(
                str(outcome.previous_remaining)
                if outcome.previous_remaining is not None
                else None
            ),
            remaining=str(outcome.remaining),
            expense_total=str(expense_total),
        )
        return outcome

    async def reconcile(
        self,
        window: DayWindow,
        now: Optional[datetime] = None,
    ) -> BudgetOutcome:
        """
        Compute today's expense total and upsert the month's budget.

        Raises:
            BudgetUpdateError: If any part of the budget step fails
        """
        try:
            expense_total = await self.compute_today_expense_total(window)
            return await self.upsert_monthly_budget(expense_total, window, now)
        except Exception as e:
            raise BudgetUpdateError(f"Budget update failed for {window.month}: {e}") from e
