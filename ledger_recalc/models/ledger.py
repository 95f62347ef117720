"""
Core Ledger Models for Ledger Recalc

These models define the strict schemas for all data flowing through the
recalculation. Store rows are converted into these models at the
boundary; nothing past the boundary touches raw record fields.

DESIGN DECISION: Conversion fails closed. A row missing a required
field raises ValidationError and the caller skips that one row.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ledger_recalc.errors import ValidationError
from ledger_recalc.services.storage.interface import Collection, Record


# =============================================================================
# FIELD NAMES - as stored in each collection
# =============================================================================

class AccountFields:
    NAME = "Name"
    CURRENCY = "Currency"
    CURRENT_BALANCE = "Current Balance"


class TransactionFields:
    TYPE = "Type"
    FROM_ACCOUNT = "From Account"
    TO_ACCOUNT = "To Account"
    CAD_AMOUNT = "CAD Amount"
    USD_AMOUNT = "USD Amount"
    DATE = "Date"
    IDEMPOTENCY_KEY = "Idempotency Key"


class DailyBalanceFields:
    NAME = "Name"
    DATE = "Date"
    ACCOUNT = "Account"
    CURRENCY = "Currency"
    DELTA = "Delta"
    CLOSING_BALANCE = "Closing Balance"
    SOURCE = "Source"
    RECONCILED = "Reconciled"


class BudgetFields:
    NAME = "Name"
    MONTH = "Month"
    BUDGET = "Budget"
    REMAINING = "Remaining"
    LAST_RECALC = "Last Recalc"


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Transaction types the delta rules know about."""
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    REPAYMENT = "repayment"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> "TransactionType":
        try:
            return cls(name.strip().lower())
        except ValueError:
            return cls.OTHER


class Lane(str, Enum):
    """Currency-specific amount fields on a transaction."""
    CAD = "CAD"
    USD = "USD"


DEFAULT_CURRENCY = "CAD"


# =============================================================================
# FIELD COERCION
# =============================================================================

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _decimal(value: Any) -> Decimal:
    """Read a number field; anything missing or unreadable counts as 0."""
    if value is None or value == "" or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _date_text(value: Any) -> str:
    """The date exactly as stored, used for fingerprints."""
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


# =============================================================================
# RUN WINDOW
# =============================================================================

class DayWindow(BaseModel):
    """
    The calendar day a run works on.

    Transactions and daily balance rows are selected with
    Date on or after `today` and before `tomorrow`.
    """
    model_config = ConfigDict(frozen=True)

    today: date

    @property
    def tomorrow(self) -> date:
        return self.today + timedelta(days=1)

    @property
    def month(self) -> str:
        """Month key, YYYY-MM."""
        return f"{self.today.year}-{self.today.month:02d}"

    @property
    def summary_title(self) -> str:
        """Title used for daily balance rows, e.g. 'October 19, 2026 - Summary'."""
        return f"{self.today.strftime('%B')} {self.today.day}, {self.today.year} - Summary"

    @classmethod
    def for_now(cls, now: datetime) -> "DayWindow":
        return cls(today=now.date())


# =============================================================================
# ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    An account whose balance the recalculation maintains.

    Created externally; only the balance updater changes current_balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        description="Unique account name (the key transactions refer to)"
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        min_length=1,
        description="Account currency, e.g. CAD or USD"
    )
    current_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance in the account's own currency"
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @classmethod
    def from_record(cls, record: Record) -> "Account":
        name = _text(record.get(AccountFields.NAME))
        if not name:
            raise ValidationError(Collection.ACCOUNTS.value, record.id, "missing account name")
        currency = _text(record.get(AccountFields.CURRENCY)) or DEFAULT_CURRENCY
        try:
            return cls(
                id=record.id,
                name=name,
                currency=currency,
                current_balance=_decimal(record.get(AccountFields.CURRENT_BALANCE)),
            )
        except ValueError as e:
            raise ValidationError(Collection.ACCOUNTS.value, record.id, str(e))


class Transaction(BaseModel):
    """
    A financial transaction read from the store.

    Created externally; the recalculation only ever writes its
    idempotency key.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    type_name: str = Field(
        default="",
        description="Type name, trimmed and lower-cased"
    )
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    cad_amount: Decimal = Decimal("0")
    usd_amount: Decimal = Decimal("0")
    date_text: str = Field(
        default="",
        description="Date as stored, including any time component"
    )
    idempotency_key: str = ""

    @property
    def type(self) -> TransactionType:
        return TransactionType.from_name(self.type_name)

    def amount(self, lane: Lane) -> Decimal:
        return self.cad_amount if lane == Lane.CAD else self.usd_amount

    @classmethod
    def from_record(cls, record: Record) -> "Transaction":
        if not record.id:
            raise ValidationError(Collection.TRANSACTIONS.value, None, "missing id")
        raw_date = record.get(TransactionFields.DATE)
        return cls(
            id=record.id,
            type_name=_text(record.get(TransactionFields.TYPE)).lower(),
            from_account=_text(record.get(TransactionFields.FROM_ACCOUNT)) or None,
            to_account=_text(record.get(TransactionFields.TO_ACCOUNT)) or None,
            cad_amount=_decimal(record.get(TransactionFields.CAD_AMOUNT)),
            usd_amount=_decimal(record.get(TransactionFields.USD_AMOUNT)),
            date_text=_date_text(raw_date),
            idempotency_key=_text(record.get(TransactionFields.IDEMPOTENCY_KEY)),
        )


class DailyBalanceRow(BaseModel):
    """
    Audit record of one account's net change and closing balance for a day.

    Unique per (account_name, currency, date).
    """

    id: str
    account_name: str = Field(..., min_length=1)
    currency: str = Field(..., min_length=1)
    balance_date: Optional[date] = None
    delta: Decimal = Decimal("0")
    closing_balance: Decimal = Decimal("0")
    source: Optional[str] = None
    reconciled: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.account_name, self.currency)

    @classmethod
    def from_record(cls, record: Record) -> "DailyBalanceRow":
        account = _text(record.get(DailyBalanceFields.ACCOUNT))
        currency = _text(record.get(DailyBalanceFields.CURRENCY)).upper()
        if not account or not currency:
            raise ValidationError(
                Collection.DAILY_BALANCES.value,
                record.id,
                "missing account or currency",
            )
        return cls(
            id=record.id,
            account_name=account,
            currency=currency,
            balance_date=_date(record.get(DailyBalanceFields.DATE)),
            delta=_decimal(record.get(DailyBalanceFields.DELTA)),
            closing_balance=_decimal(record.get(DailyBalanceFields.CLOSING_BALANCE)),
            source=_text(record.get(DailyBalanceFields.SOURCE)) or None,
            reconciled=bool(record.get(DailyBalanceFields.RECONCILED) or False),
        )


class Budget(BaseModel):
    """The monthly spending counter. One row per month."""

    id: str
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    budget: Decimal = Decimal("0")
    remaining: Optional[Decimal] = Field(
        default=None,
        description="None when the row has never recorded a remaining amount"
    )
    last_recalc: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Record, month: str) -> "Budget":
        """
        Build from a row found for `month`.

        The row was matched on either Month or Name, so the looked-up
        month is the row's month whichever field carried it.
        """
        try:
            return cls(
                id=record.id,
                month=month,
                budget=_decimal(record.get(BudgetFields.BUDGET)),
                remaining=_optional_decimal(record.get(BudgetFields.REMAINING)),
                last_recalc=_datetime(record.get(BudgetFields.LAST_RECALC)),
            )
        except ValueError as e:
            raise ValidationError(Collection.BUDGETS.value, record.id, str(e))
