"""
Delta Computer

Streams today's transactions, applies the currency-lane rules for each
transaction type and nets the result into one delta per account, in
the account's own currency.

IDEMPOTENCE: each transaction is fingerprinted over the fields that
decide its effect (type, from, to, CAD amount, USD amount, date). A
transaction whose stored idempotency key equals its fingerprint has
already been applied and contributes nothing. Editing any of those
fields changes the fingerprint, so the edited transaction is applied
again.

Keys are written by stamp_applied() once the balances are committed, so
a run that stops before that point leaves its transactions eligible.

Lane rules:
- expense: debit from_account by the lane matching its currency
- income: credit to_account by the lane matching its currency
- transfer: same currency moves that lane only; CAD<->USD needs both
  lanes, otherwise nothing moves
- repayment: each positive lane independently debits a matching
  from_account and credits a matching to_account
- anything else: ignored
"""

import hashlib
import json
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from ledger_recalc.audit import AuditLogger
from ledger_recalc.errors import IdempotencyWriteError, ValidationError
from ledger_recalc.models.ledger import (
    Account,
    DayWindow,
    Lane,
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


DeltaMap = dict[str, Decimal]


def _number_text(value: Decimal) -> str:
    """Stable text for an amount: 20, 20.0 and 20.00 all give '20'."""
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def compute_fingerprint(transaction: Transaction) -> str:
    """SHA-256 over the canonical JSON of the fields that decide a transaction's effect."""
    payload = {
        "type": transaction.type_name,
        "from": transaction.from_account or "",
        "to": transaction.to_account or "",
        "cad": _number_text(transaction.cad_amount),
        "usd": _number_text(transaction.usd_amount),
        "date": transaction.date_text,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _lane_for(currency: Optional[str]) -> Optional[Lane]:
    if currency is None:
        return None
    try:
        return Lane(currency)
    except ValueError:
        return None


def transaction_changes(
    transaction: Transaction,
    accounts: dict[str, Account],
) -> list[tuple[str, Decimal]]:
    """
    Account changes a single transaction produces.

    Returns (account_name, signed_amount) pairs; an empty list means the
    transaction does not touch any known account.
    """
    changes: list[tuple[str, Decimal]] = []

    def currency_of(name: Optional[str]) -> Optional[str]:
        if not name or name not in accounts:
            return None
        return accounts[name].currency

    def add(name: Optional[str], amount: Decimal) -> None:
        if not name or not amount:
            return
        changes.append((name, amount))

    source = transaction.from_account
    target = transaction.to_account
    tx_type = transaction.type

    if tx_type == TransactionType.EXPENSE:
        lane = _lane_for(currency_of(source))
        if lane and transaction.amount(lane) > 0:
            add(source, -transaction.amount(lane))

    elif tx_type == TransactionType.INCOME:
        lane = _lane_for(currency_of(target))
        if lane and transaction.amount(lane) > 0:
            add(target, transaction.amount(lane))

    elif tx_type == TransactionType.TRANSFER:
        source_lane = _lane_for(currency_of(source))
        target_lane = _lane_for(currency_of(target))
        if source_lane is None or target_lane is None:
            return changes

        if source_lane == target_lane:
            amount = transaction.amount(source_lane)
            if amount > 0:
                add(source, -amount)
                add(target, amount)
        else:
            # Cross-currency: both exchange legs must be present
            outgoing = transaction.amount(source_lane)
            incoming = transaction.amount(target_lane)
            if outgoing > 0 and incoming > 0:
                add(source, -outgoing)
                add(target, incoming)

    elif tx_type == TransactionType.REPAYMENT:
        for lane in Lane:
            amount = transaction.amount(lane)
            if amount <= 0:
                continue
            if currency_of(source) == lane.value:
                add(source, -amount)
            if currency_of(target) == lane.value:
                add(target, amount)

    return changes


class DeltaComputation(BaseModel):
    """Outcome of netting today's transactions."""

    deltas: DeltaMap = Field(default_factory=dict)
    applied: list[str] = Field(
        default_factory=list,
        description="Transactions that produced changes this run"
    )
    already_applied: list[str] = Field(
        default_factory=list,
        description="Transactions skipped because their fingerprint was stored"
    )
    fingerprints: dict[str, str] = Field(
        default_factory=dict,
        description="Fingerprint of each applied transaction, written by stamp_applied()"
    )
    unstamped: list[str] = Field(
        default_factory=list,
        description="Applied transactions whose idempotency key could not be written"
    )


class DeltaComputer:
    """
    Computes today's per-account deltas and stamps applied transactions.
    """

    def __init__(self, store: RecordStore, audit_logger: AuditLogger, page_size: int = 100):
        self._store = store
        self._audit = audit_logger
        self._page_size = page_size

    def today_query(self, window: DayWindow) -> PaginatedQuery:
        return PaginatedQuery(
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

    async def load_today_transactions(self, window: DayWindow) -> list[Transaction]:
        """
        Read today's transactions.

        Raises:
            DataSourceError: If any page fetch fails
        """
        transactions: list[Transaction] = []
        skipped = 0
        async for record in self.today_query(window):
            try:
                transactions.append(Transaction.from_record(record))
            except ValidationError as e:
                skipped += 1
                self._audit.log_record_skipped(Collection.TRANSACTIONS.value, record.id, str(e))
        self._audit.log_transactions_loaded(len(transactions), skipped)
        return transactions

    async def compute_today_deltas(
        self,
        accounts: dict[str, Account],
        transactions: Iterable[Transaction],
    ) -> DeltaComputation:
        """Net the transactions into per-account deltas. Nothing is written here."""
        result = DeltaComputation()

        for transaction in transactions:
            fingerprint = compute_fingerprint(transaction)
            if transaction.idempotency_key == fingerprint:
                result.already_applied.append(transaction.id)
                self._audit.log_transaction_already_applied(transaction.id)
                continue

            changes = transaction_changes(transaction, accounts)
            if not changes:
                continue

            for name, amount in changes:
                result.deltas[name] = result.deltas.get(name, Decimal("0")) + amount
            result.applied.append(transaction.id)
            result.fingerprints[transaction.id] = fingerprint
            self._audit.log_transaction_applied(
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                changes={name: str(amount) for name, amount in changes},
            )

        return result

    async def stamp_applied(self, computation: DeltaComputation) -> None:
        """
        Store the fingerprint of every applied transaction.

        Call only after the deltas are committed. A failed key write is
        logged and recorded in `unstamped`; that transaction will be
        applied again by the next run.
        """
        for transaction_id, fingerprint in computation.fingerprints.items():
            try:
                await self._stamp(transaction_id, fingerprint)
            except IdempotencyWriteError as e:
                computation.unstamped.append(transaction_id)
                self._audit.log_idempotency_write_failed(e.transaction_id, str(e))

    async def _stamp(self, transaction_id: str, fingerprint: str) -> None:
        try:
            await self._store.update(
                Collection.TRANSACTIONS,
                transaction_id,
                {TransactionFields.IDEMPOTENCY_KEY: fingerprint},
            )
        except Exception as e:
            raise IdempotencyWriteError(
                transaction_id,
                f"Failed to set idempotency key for transaction {transaction_id}: {e}",
            ) from e
