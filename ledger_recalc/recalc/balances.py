"""
Balance Updater

Applies computed deltas to account balances and keeps one daily
balance row per (account, currency, day).

The today's-rows index is loaded once per run and refreshed after
every write, so a second pass over the same account within one run
updates the row it created instead of creating another.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ledger_recalc.audit import AuditLogger
from ledger_recalc.errors import ValidationError
from ledger_recalc.models.ledger import (
    Account,
    AccountFields,
    DailyBalanceFields,
    DailyBalanceRow,
    DayWindow,
)
from ledger_recalc.services.storage import (
    Collection,
    Condition,
    FilterOp,
    PaginatedQuery,
    QueryFilter,
    RecordStore,
)


class DailyBalanceIndex:
    """Today's daily balance rows keyed by (account name, currency)."""

    def __init__(self, window: DayWindow, rows: Optional[list[DailyBalanceRow]] = None):
        self.window = window
        self._rows: dict[tuple[str, str], DailyBalanceRow] = {}
        for row in rows or []:
            self.put(row)

    def get(self, account_name: str, currency: str) -> Optional[DailyBalanceRow]:
        return self._rows.get((account_name, currency.upper()))

    def put(self, row: DailyBalanceRow) -> None:
        self._rows[row.key] = row


class BalanceUpdateSummary(BaseModel):
    """Writes issued by one balance update pass."""

    accounts_updated: list[str] = Field(default_factory=list)
    rows_created: list[str] = Field(default_factory=list)
    rows_updated: list[str] = Field(default_factory=list)
    rows_unchanged: list[str] = Field(default_factory=list)


class BalanceUpdater:
    """Commits new balances and upserts today's daily balance rows."""

    def __init__(
        self,
        store: RecordStore,
        audit_logger: AuditLogger,
        source_tag: str = "automated",
        page_size: int = 100,
    ):
        self._store = store
        self._audit = audit_logger
        self._source_tag = source_tag
        self._page_size = page_size

    async def load_today_index(self, window: DayWindow) -> DailyBalanceIndex:
        """
        Load today's daily balance rows.

        Rows missing an account or currency are skipped.

        Raises:
            DataSourceError: If any page fetch fails
        """
        query = PaginatedQuery(
            self._store,
            Collection.DAILY_BALANCES,
            filter=QueryFilter(all_of=[
                Condition(field=DailyBalanceFields.DATE, op=FilterOp.ON_OR_AFTER,
                          value=window.today.isoformat()),
                Condition(field=DailyBalanceFields.DATE, op=FilterOp.BEFORE,
                          value=window.tomorrow.isoformat()),
            ]),
            page_size=self._page_size,
        )

        index = DailyBalanceIndex(window)
        async for record in query:
            try:
                index.put(DailyBalanceRow.from_record(record))
            except ValidationError as e:
                self._audit.log_record_skipped(Collection.DAILY_BALANCES.value, record.id, str(e))
        return index

    async def update_accounts(
        self,
        accounts: dict[str, Account],
        deltas: dict[str, Decimal],
        index: DailyBalanceIndex,
    ) -> BalanceUpdateSummary:
        """
        Apply deltas to every known account and upsert its daily row.

        Accounts without a delta still get a daily row (delta 0).

        Raises:
            StorageError: If a balance or daily row write fails
        """
        summary = BalanceUpdateSummary()

        for account in accounts.values():
            delta = deltas.get(account.name, Decimal("0"))
            previous = account.current_balance
            new_balance = previous + delta

            if delta != 0:
                await self._store.update(
                    Collection.ACCOUNTS,
                    account.id,
                    {AccountFields.CURRENT_BALANCE: new_balance},
                )
                account.current_balance = new_balance
                summary.accounts_updated.append(account.name)
                self._audit.log_balance_updated(
                    account_id=account.id,
                    account_name=account.name,
                    currency=account.currency,
                    previous=str(previous),
                    new=str(new_balance),
                    delta=f"{'+' if delta >= 0 else ''}{delta}",
                )
            else:
                self._audit.log_balance_unchanged(
                    account_id=account.id,
                    account_name=account.name,
                    currency=account.currency,
                    closing=str(account.current_balance),
                )

            outcome = await self.upsert_daily_balance_row(
                account=account,
                delta=delta,
                closing_balance=account.current_balance,
                index=index,
            )
            getattr(summary, f"rows_{outcome}").append(account.name)

        return summary

    async def upsert_daily_balance_row(
        self,
        account: Account,
        delta: Decimal,
        closing_balance: Decimal,
        index: DailyBalanceIndex,
    ) -> str:
        """
        Create or update today's row for one account.

        An existing row accumulates the delta and takes the new closing
        balance; it is only written when one of the two changes.

        Returns:
            "created", "updated" or "unchanged"
        """
        window = index.window
        existing = index.get(account.name, account.currency)

        if existing is not None:
            new_delta = existing.delta + delta
            if delta == 0 and closing_balance == existing.closing_balance:
                return "unchanged"

            await self._store.update(
                Collection.DAILY_BALANCES,
                existing.id,
                {
                    DailyBalanceFields.DELTA: new_delta,
                    DailyBalanceFields.CLOSING_BALANCE: closing_balance,
                },
            )
            index.put(existing.model_copy(update={
                "delta": new_delta,
                "closing_balance": closing_balance,
            }))
            self._audit.log_daily_balance_written(
                created=False,
                row_id=existing.id,
                account_name=account.name,
                currency=account.currency,
                delta=str(new_delta),
                closing=str(closing_balance),
            )
            return "updated"

        row_id = await self._store.create(
            Collection.DAILY_BALANCES,
            {
                DailyBalanceFields.NAME: window.summary_title,
                DailyBalanceFields.DATE: window.today.isoformat(),
                DailyBalanceFields.ACCOUNT: account.name,
                DailyBalanceFields.CURRENCY: account.currency,
                DailyBalanceFields.DELTA: delta,
                DailyBalanceFields.CLOSING_BALANCE: closing_balance,
                DailyBalanceFields.SOURCE: self._source_tag,
                DailyBalanceFields.RECONCILED: False,
            },
        )
        index.put(DailyBalanceRow(
            id=row_id,
            account_name=account.name,
            currency=account.currency,
            balance_date=window.today,
            delta=delta,
            closing_balance=closing_balance,
            source=self._source_tag,
            reconciled=False,
        ))
        self._audit.log_daily_balance_written(
            created=True,
            row_id=row_id,
            account_name=account.name,
            currency=account.currency,
            delta=str(delta),
            closing=str(closing_balance),
        )
        return "created"
