"""
Audit Logger

DESIGN DECISION: Every significant step of a run is logged.
This provides:
1. Complete traceability of balance and budget writes
2. Debugging capability when a run stops halfway
3. A per-run event list the caller can inspect

The audit logger:
- Never raises (a logging failure must not break a run)
- Stamps every event with the run's correlation id
- Keeps the events of the current run in memory
"""

import logging
import sys
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import structlog

from ledger_recalc.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of stdlib logging.

    Called once by each entrypoint (HTTP app, CLI). Logs go to stderr so
    the CLI can print its JSON summary on stdout.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service for one recalculation run.

    Logs events to the structured log and keeps them in `events`.
    """

    def __init__(self, correlation_id: Optional[UUID] = None):
        self.correlation_id = correlation_id or create_correlation_id()
        self.events: list[AuditEvent] = []
        self._logger = structlog.get_logger("ledger_recalc.audit")

    def log(self, event: AuditEvent) -> None:
        """Record an audit event and write it to the structured log."""
        if event.correlation_id is None:
            event.correlation_id = self.correlation_id
        self.events.append(event)

        try:
            log_dict = event.to_log_dict()
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            print(f"WARNING: Failed to write audit event {event.event_id}: {e}", file=sys.stderr)

    def _emit(self, build: Callable[..., AuditEvent], *args: Any, **kwargs: Any) -> None:
        """Build an event and log it; a builder failure is reported, not raised."""
        try:
            event = build(*args, **kwargs)
        except Exception as e:
            print(f"WARNING: Failed to build audit event {build.__name__}: {e}", file=sys.stderr)
            return
        self.log(event)

    def of_type(self, *event_types) -> list[AuditEvent]:
        """Events of this run with one of the given types."""
        return [e for e in self.events if e.event_type in event_types]

    def log_run_started(self, day: str) -> None:
        self._emit(AuditEventBuilder.run_started, day, self.correlation_id)

    def log_run_completed(self, day: str, summary: dict) -> None:
        self._emit(AuditEventBuilder.run_completed, day, summary, self.correlation_id)

    def log_run_aborted(self, day: str, reason: str) -> None:
        self._emit(AuditEventBuilder.run_aborted, day, reason, self.correlation_id)

    def log_run_failed(self, day: str, error: Exception) -> None:
        self._emit(
            AuditEventBuilder.run_failed,
            day=day,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=self.correlation_id,
        )

    def log_accounts_loaded(self, count: int, skipped: int) -> None:
        self._emit(AuditEventBuilder.accounts_loaded, count, skipped, self.correlation_id)

    def log_transactions_loaded(self, count: int, skipped: int) -> None:
        self._emit(AuditEventBuilder.transactions_loaded, count, skipped, self.correlation_id)

    def log_record_skipped(self, collection: str, record_id: Optional[str], reason: str) -> None:
        self._emit(
            AuditEventBuilder.record_skipped,
            collection=collection,
            record_id=record_id,
            reason=reason,
            correlation_id=self.correlation_id,
        )

    def log_transaction_applied(
        self,
        transaction_id: str,
        transaction_type: str,
        changes: dict[str, str],
    ) -> None:
        self._emit(
            AuditEventBuilder.transaction_applied,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            changes=changes,
            correlation_id=self.correlation_id,
        )

    def log_transaction_already_applied(self, transaction_id: str) -> None:
        self._emit(
            AuditEventBuilder.transaction_already_applied,
            transaction_id, self.correlation_id
        )

    def log_idempotency_write_failed(self, transaction_id: str, error_message: str) -> None:
        self._emit(
            AuditEventBuilder.idempotency_write_failed,
            transaction_id=transaction_id,
            error_message=error_message,
            correlation_id=self.correlation_id,
        )

    def log_balance_updated(
        self,
        account_id: str,
        account_name: str,
        currency: str,
        previous: str,
        new: str,
        delta: str,
    ) -> None:
        self._emit(
            AuditEventBuilder.balance_updated,
            account_id=account_id,
            account_name=account_name,
            currency=currency,
            previous=previous,
            new=new,
            delta=delta,
            correlation_id=self.correlation_id,
        )

    def log_balance_unchanged(
        self,
        account_id: str,
        account_name: str,
        currency: str,
        closing: str,
    ) -> None:
        self._emit(
            AuditEventBuilder.balance_unchanged,
            account_id=account_id,
            account_name=account_name,
            currency=currency,
            closing=closing,
            correlation_id=self.correlation_id,
        )

    def log_daily_balance_written(
        self,
        created: bool,
        row_id: str,
        account_name: str,
        currency: str,
        delta: str,
        closing: str,
    ) -> None:
        self._emit(
            AuditEventBuilder.daily_balance_written,
            created=created,
            row_id=row_id,
            account_name=account_name,
            currency=currency,
            delta=delta,
            closing=closing,
            correlation_id=self.correlation_id,
        )

    def log_budget_written(
        self,
        created: bool,
        budget_id: str,
        month: str,
        previous_remaining: Optional[str],
        remaining: str,
        expense_total: str,
    ) -> None:
        self._emit(
            AuditEventBuilder.budget_written,
            created=created,
            budget_id=budget_id,
            month=month,
            previous_remaining=previous_remaining,
            remaining=remaining,
            expense_total=expense_total,
            correlation_id=self.correlation_id,
        )

    def log_budget_update_failed(self, month: str, error_message: str) -> None:
        self._emit(
            AuditEventBuilder.budget_update_failed,
            month, error_message, self.correlation_id
        )

    def log_budget_recalculated_twice(self, budget_id: str, month: str, last_recalc: str) -> None:
        self._emit(
            AuditEventBuilder.budget_recalculated_twice,
            budget_id=budget_id,
            month=month,
            last_recalc=last_recalc,
            correlation_id=self.correlation_id,
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    One is created per recalculation run and shared by all its events.
    """
    return uuid4()
