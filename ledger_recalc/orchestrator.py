"""
Main Orchestrator for Ledger Recalc

This module ties the recalculation stages together into one daily run:
1. Load accounts (abort the run if there are none)
2. Compute today's deltas
3. Load today's daily balance rows
4. Update balances and daily balance rows for every account, then
   stamp the applied transactions' idempotency keys
5. Reconcile the monthly budget (failure logged, run continues)
6. Log completion

DESIGN DECISION: The orchestrator enforces the failure policy:
- Data source failures in steps 1-4 stop the run and propagate
- The budget step is isolated; balances already written stay written
- Every step is audited under one correlation id

A run has no cross-step transaction. Keys are stamped only after every
balance and daily row is written, so a run that stops in steps 2-4
leaves today's transactions unstamped and the next run applies them.
Accounts already written before the failure receive their delta again
(at-least-once). Two overlapping runs are NOT protected against each
other.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ledger_recalc.audit import AuditLogger
from ledger_recalc.config import AppSettings, get_settings
from ledger_recalc.errors import BudgetUpdateError
from ledger_recalc.models.audit import AuditEvent
from ledger_recalc.models.ledger import DayWindow
from ledger_recalc.recalc import (
    AccountDirectory,
    BalanceUpdater,
    BudgetOutcome,
    BudgetReconciler,
    DeltaComputer,
)
from ledger_recalc.services.storage import NotionRecordStore, RecordStore


class RunStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


class RecalcRunResult(BaseModel):
    """What one recalculation run did."""

    run_id: UUID
    day: date
    status: RunStatus
    reason: Optional[str] = Field(
        default=None,
        description="Why the run was aborted"
    )

    deltas: dict[str, Decimal] = Field(default_factory=dict)
    applied: list[str] = Field(default_factory=list)
    already_applied: list[str] = Field(default_factory=list)
    unstamped: list[str] = Field(default_factory=list)

    accounts_updated: list[str] = Field(default_factory=list)
    rows_created: list[str] = Field(default_factory=list)
    rows_updated: list[str] = Field(default_factory=list)

    expense_total: Optional[Decimal] = None
    budget: Optional[BudgetOutcome] = None
    budget_error: Optional[str] = None

    events: list[AuditEvent] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED

    def summary(self) -> dict:
        """Compact, JSON-friendly view without the event list."""
        return {
            "run_id": str(self.run_id),
            "day": self.day.isoformat(),
            "status": self.status.value,
            "reason": self.reason,
            "deltas": {name: str(delta) for name, delta in self.deltas.items()},
            "applied": len(self.applied),
            "already_applied": len(self.already_applied),
            "unstamped": len(self.unstamped),
            "accounts_updated": len(self.accounts_updated),
            "rows_created": len(self.rows_created),
            "rows_updated": len(self.rows_updated),
            "expense_total": str(self.expense_total) if self.expense_total is not None else None,
            "budget_remaining": str(self.budget.remaining) if self.budget else None,
            "budget_error": self.budget_error,
        }


class DailyRecalcFlow:
    """
    Orchestrates the daily recalculation.

    Each call to run_daily_recalc builds fresh stage objects and a fresh
    audit logger; nothing is shared between runs except the store.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[AppSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().app

    @property
    def store(self) -> RecordStore:
        return self._store

    async def run_daily_recalc(
        self,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> RecalcRunResult:
        """
        Run one recalculation pass.

        Args:
            today: Day to recalculate; defaults to today in the configured timezone
            now: Timestamp stamped on the budget row; defaults to the current time

        Returns:
            RecalcRunResult, with status "aborted" if no accounts were found

        Raises:
            DataSourceError: If accounts, transactions or daily rows cannot be read
            StorageError: If a balance or daily row write fails
        """
        now = now or datetime.now(self._settings.tzinfo)
        window = DayWindow(today=today or now.date())
        day = window.today.isoformat()

        audit = AuditLogger()
        page_size = self._settings.page_size
        directory = AccountDirectory(self._store, audit, page_size=page_size)
        delta_computer = DeltaComputer(self._store, audit, page_size=page_size)
        balance_updater = BalanceUpdater(
            self._store,
            audit,
            source_tag=self._settings.daily_balance_source,
            page_size=page_size,
        )
        budget_reconciler = BudgetReconciler(
            self._store,
            audit,
            default_budget=self._settings.default_monthly_budget,
            page_size=page_size,
        )

        audit.log_run_started(day)

        try:
            # Step 1: Accounts
            accounts = await directory.load_accounts()
            if not accounts:
                reason = "No accounts found; check the accounts database and its property names"
                audit.log_run_aborted(day, reason)
                return RecalcRunResult(
                    run_id=audit.correlation_id,
                    day=window.today,
                    status=RunStatus.ABORTED,
                    reason=reason,
                    events=list(audit.events),
                )

            # Step 2: Deltas
            transactions = await delta_computer.load_today_transactions(window)
            computation = await delta_computer.compute_today_deltas(accounts, transactions)

            # Steps 3-4: Balances and daily rows
            index = await balance_updater.load_today_index(window)
            balances = await balance_updater.update_accounts(accounts, computation.deltas, index)
            await delta_computer.stamp_applied(computation)
        except Exception as e:
            audit.log_run_failed(day, e)
            raise

        result = RecalcRunResult(
            run_id=audit.correlation_id,
            day=window.today,
            status=RunStatus.COMPLETED,
            deltas=computation.deltas,
            applied=computation.applied,
            already_applied=computation.already_applied,
            unstamped=computation.unstamped,
            accounts_updated=balances.accounts_updated,
            rows_created=balances.rows_created,
            rows_updated=balances.rows_updated,
        )

        # Step 5: Budget (non-fatal)
        try:
            outcome = await budget_reconciler.reconcile(window, now)
            result.budget = outcome
            result.expense_total = outcome.expense_total
        except BudgetUpdateError as e:
            result.budget_error = str(e)
            audit.log_budget_update_failed(window.month, str(e))

        # Step 6: Done
        audit.log_run_completed(day, result.summary())
        result.events = list(audit.events)
        return result


def create_app_components(
    store: Optional[RecordStore] = None,
) -> tuple[DailyRecalcFlow, RecordStore]:
    """
    Factory function to create the recalculation flow.

    Args:
        store: Record store to run against. Defaults to the Notion store
               built from NOTION_* settings.

    Returns:
        (flow, store) - the caller closes the store when done
    """
    settings = get_settings()
    if store is None:
        store = NotionRecordStore.from_settings(settings.notion)
    flow = DailyRecalcFlow(store=store, settings=settings.app)
    return flow, store
