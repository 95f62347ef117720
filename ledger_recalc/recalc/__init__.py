"""Recalculation stages, in the order a run uses them."""

from ledger_recalc.recalc.accounts import AccountDirectory
from ledger_recalc.recalc.balances import BalanceUpdater, BalanceUpdateSummary, DailyBalanceIndex
from ledger_recalc.recalc.budget import BudgetOutcome, BudgetReconciler
from ledger_recalc.recalc.deltas import (
    DeltaComputation,
    DeltaComputer,
    compute_fingerprint,
    transaction_changes,
)

__all__ = [
    "AccountDirectory",
    "BalanceUpdateSummary",
    "BalanceUpdater",
    "BudgetOutcome",
    "BudgetReconciler",
    "DailyBalanceIndex",
    "DeltaComputation",
    "DeltaComputer",
    "compute_fingerprint",
    "transaction_changes",
]
