"""Shared fixtures: an in-memory store and a fixed day to run against."""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from ledger_recalc.audit import AuditLogger
from ledger_recalc.config import AppSettings
from ledger_recalc.models.ledger import (
    AccountFields,
    BudgetFields,
    DailyBalanceFields,
    DayWindow,
    TransactionFields,
)
from ledger_recalc.services.storage import Collection, InMemoryRecordStore


TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 23, 30, tzinfo=timezone.utc)


def seed_account(
    store: InMemoryRecordStore,
    name: str,
    currency: Optional[str] = "CAD",
    balance: str = "0",
) -> str:
    fields = {AccountFields.NAME: name, AccountFields.CURRENT_BALANCE: Decimal(balance)}
    if currency is not None:
        fields[AccountFields.CURRENCY] = currency
    return store.seed(Collection.ACCOUNTS, fields)


def seed_transaction(
    store: InMemoryRecordStore,
    type_name: str,
    from_account: Optional[str] = None,
    to_account: Optional[str] = None,
    cad: Optional[str] = None,
    usd: Optional[str] = None,
    day: str = "2026-10-19",
    idempotency_key: str = "",
) -> str:
    return store.seed(Collection.TRANSACTIONS, {
        TransactionFields.TYPE: type_name,
        TransactionFields.FROM_ACCOUNT: from_account,
        TransactionFields.TO_ACCOUNT: to_account,
        TransactionFields.CAD_AMOUNT: Decimal(cad) if cad is not None else None,
        TransactionFields.USD_AMOUNT: Decimal(usd) if usd is not None else None,
        TransactionFields.DATE: day,
        TransactionFields.IDEMPOTENCY_KEY: idempotency_key,
    })


def seed_daily_balance(
    store: InMemoryRecordStore,
    account: str,
    currency: str,
    delta: str,
    closing: str,
    day: str = "2026-10-19",
) -> str:
    return store.seed(Collection.DAILY_BALANCES, {
        DailyBalanceFields.NAME: "October 19, 2026 - Summary",
        DailyBalanceFields.DATE: day,
        DailyBalanceFields.ACCOUNT: account,
        DailyBalanceFields.CURRENCY: currency,
        DailyBalanceFields.DELTA: Decimal(delta),
        DailyBalanceFields.CLOSING_BALANCE: Decimal(closing),
        DailyBalanceFields.SOURCE: "automated",
        DailyBalanceFields.RECONCILED: False,
    })


def seed_budget(
    store: InMemoryRecordStore,
    month: str = "2026-10",
    budget: str = "1000",
    remaining: Optional[str] = None,
    last_recalc: Optional[str] = None,
    by_name_only: bool = False,
) -> str:
    fields = {
        BudgetFields.NAME: month,
        BudgetFields.BUDGET: Decimal(budget),
        BudgetFields.REMAINING: Decimal(remaining) if remaining is not None else None,
        BudgetFields.LAST_RECALC: last_recalc,
    }
    if not by_name_only:
        fields[BudgetFields.MONTH] = month
    return store.seed(Collection.BUDGETS, fields)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def window() -> DayWindow:
    return DayWindow(today=TODAY)


@pytest.fixture
def audit() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        timezone="UTC",
        default_monthly_budget=Decimal("1000"),
        page_size=2,
        daily_balance_source="automated",
    )
