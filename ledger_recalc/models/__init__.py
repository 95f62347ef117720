"""
Data Models Package

This package contains all Pydantic models used in the Ledger Recalc system.
All data flowing through a recalculation must conform to these schemas.
"""

from ledger_recalc.models.ledger import (
    Account,
    AccountFields,
    Budget,
    BudgetFields,
    DailyBalanceFields,
    DailyBalanceRow,
    DayWindow,
    Lane,
    Transaction,
    TransactionFields,
    TransactionType,
)
from ledger_recalc.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountFields",
    "Budget",
    "BudgetFields",
    "DailyBalanceFields",
    "DailyBalanceRow",
    "DayWindow",
    "Lane",
    "Transaction",
    "TransactionFields",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
