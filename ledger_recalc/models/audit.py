"""
Audit Models for Ledger Recalc

Every significant step of a recalculation run is logged for audit purposes.
This provides:
1. Traceability of every balance and budget write
2. Debugging information when a run stops halfway
3. A record of which transactions were applied, skipped or left unstamped

DESIGN DECISION: Audit events are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


DESCRIPTION_MAX_LENGTH = 500


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every stage of the recalculation has its own event types.
    """
    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_ABORTED = "run_aborted"
    RUN_FAILED = "run_failed"

    # Reading
    ACCOUNTS_LOADED = "accounts_loaded"
    TRANSACTIONS_LOADED = "transactions_loaded"
    RECORD_SKIPPED = "record_skipped"

    # Deltas
    TRANSACTION_APPLIED = "transaction_applied"
    TRANSACTION_ALREADY_APPLIED = "transaction_already_applied"
    IDEMPOTENCY_WRITE_FAILED = "idempotency_write_failed"

    # Balances
    BALANCE_UPDATED = "balance_updated"
    BALANCE_UNCHANGED = "balance_unchanged"
    DAILY_BALANCE_CREATED = "daily_balance_created"
    DAILY_BALANCE_UPDATED = "daily_balance_updated"

    # Budget
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_UPDATE_FAILED = "budget_update_failed"
    BUDGET_RECALCULATED_TWICE = "budget_recalculated_twice"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant step creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'budget')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Store id of the entity this event relates to"
    )

    # Correlation - one id per run
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by every event of one recalculation run"
    )

    description: str = Field(
        ...,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def truncate_description(cls, v):
        """Cut long descriptions (e.g. long account names) instead of rejecting the event."""
        if isinstance(v, str) and len(v) > DESCRIPTION_MAX_LENGTH:
            return v[:DESCRIPTION_MAX_LENGTH - 3] + "..."
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.run_started(run_id, day)
        event = AuditEventBuilder.balance_updated(account_id, ..., run_id)
    """

    @staticmethod
    def run_started(day: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_STARTED,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Daily recalculation started for {day}",
            details={"day": day},
        )

    @staticmethod
    def run_completed(day: str, summary: dict, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_COMPLETED,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Daily recalculation completed for {day}",
            details=summary,
        )

    @staticmethod
    def run_aborted(day: str, reason: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_ABORTED,
            severity=AuditSeverity.ERROR,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Daily recalculation aborted for {day}: {reason}",
            details={"day": day, "reason": reason},
        )

    @staticmethod
    def run_failed(
        day: str,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Daily recalculation failed for {day}: {error_type}",
            error_message=error_message,
            details={"day": day, "error_type": error_type},
        )

    @staticmethod
    def accounts_loaded(count: int, skipped: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_LOADED,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Loaded {count} accounts ({skipped} skipped)",
            details={"count": count, "skipped": skipped},
        )

    @staticmethod
    def transactions_loaded(count: int, skipped: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_LOADED,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Loaded {count} transactions for today ({skipped} skipped)",
            details={"count": count, "skipped": skipped},
        )

    @staticmethod
    def record_skipped(
        collection: str,
        record_id: Optional[str],
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Skipped invalid {collection} record",
            details={"reason": reason},
        )

    @staticmethod
    def transaction_applied(
        transaction_id: str,
        transaction_type: str,
        changes: dict[str, str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_APPLIED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Applied {transaction_type} to {len(changes)} account(s)",
            details={"type": transaction_type, "changes": changes},
        )

    @staticmethod
    def transaction_already_applied(transaction_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ALREADY_APPLIED,
            severity=AuditSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction fingerprint matches stored key; skipped",
        )

    @staticmethod
    def idempotency_write_failed(
        transaction_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IDEMPOTENCY_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Failed to store idempotency key; transaction may be applied again",
            error_message=error_message,
        )

    @staticmethod
    def balance_updated(
        account_id: str,
        account_name: str,
        currency: str,
        previous: str,
        new: str,
        delta: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"[{currency}] {account_name}: {previous} -> {new} (delta {delta})",
            details={
                "account": account_name,
                "currency": currency,
                "previous": previous,
                "new": new,
                "delta": delta,
            },
        )

    @staticmethod
    def balance_unchanged(
        account_id: str,
        account_name: str,
        currency: str,
        closing: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UNCHANGED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"[{currency}] {account_name}: no transactions today (closing {closing})",
            details={"account": account_name, "currency": currency, "closing": closing},
        )

    @staticmethod
    def daily_balance_written(
        created: bool,
        row_id: str,
        account_name: str,
        currency: str,
        delta: str,
        closing: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.DAILY_BALANCE_CREATED
                if created
                else AuditEventType.DAILY_BALANCE_UPDATED
            ),
            entity_type="daily_balance",
            entity_id=row_id,
            correlation_id=correlation_id,
            description=(
                f"Daily balance {'created' if created else 'updated'} "
                f"for {account_name} ({currency})"
            ),
            details={
                "account": account_name,
                "currency": currency,
                "delta": delta,
                "closing": closing,
            },
        )

    @staticmethod
    def budget_written(
        created: bool,
        budget_id: str,
        month: str,
        previous_remaining: Optional[str],
        remaining: str,
        expense_total: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED if created else AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=(
                f"Budget {month} {'created' if created else 'updated'}: "
                f"remaining {previous_remaining or '-'} -> {remaining} (expense -{expense_total})"
            ),
            details={
                "month": month,
                "previous_remaining": previous_remaining,
                "remaining": remaining,
                "expense_total": expense_total,
            },
        )

    @staticmethod
    def budget_update_failed(month: str, error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            correlation_id=correlation_id,
            description=f"Budget update failed for {month}",
            error_message=error_message,
            details={"month": month},
        )

    @staticmethod
    def budget_recalculated_twice(
        budget_id: str,
        month: str,
        last_recalc: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECALCULATED_TWICE,
            severity=AuditSeverity.WARNING,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=(
                f"Budget {month} was already recalculated today; "
                "today's expenses are subtracted again"
            ),
            details={"month": month, "last_recalc": last_recalc},
        )
