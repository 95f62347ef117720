"""
Recalculation Errors

Store failures live with the storage interface (StorageError,
DataSourceError). The errors here describe what goes wrong while a run
interprets and applies the data it read.

Policy per error:
- ValidationError: one record is skipped, the run continues
- IdempotencyWriteError: logged, transaction stays eligible for the next run
- BudgetUpdateError: logged by the orchestrator, balances already committed stay
"""

from typing import Optional


class RecalcError(Exception):
    """Base exception for recalculation errors."""
    pass


class ValidationError(RecalcError):
    """A record is missing a required field or holds an unusable value."""

    def __init__(self, collection: str, record_id: Optional[str], message: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id or '<unknown>'}: {message}")


class IdempotencyWriteError(RecalcError):
    """The idempotency key of an applied transaction could not be persisted."""

    def __init__(self, transaction_id: str, message: str):
        self.transaction_id = transaction_id
        super().__init__(message)


class BudgetUpdateError(RecalcError):
    """The monthly budget could not be computed or written."""
    pass
