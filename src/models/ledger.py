"""
Ledger Record Models

These models define the strict schemas for every record the Record Store
hands to the accounting engine. They are designed to:
1. Reject malformed records at construction time
2. Be serializable for storage (snake_case field names are the wire names)
3. Be immutable - updates always produce a new, re-validated record

DESIGN DECISION: Amounts are Decimal, never float.
Currency conversion multiplies by small rates (e.g. COP 0.00026) and
float drift would leak into budget and balance figures.

DESIGN DECISION: Record dates are calendar dates.
Collaborators sometimes send ISO timestamps ("2024-03-10T14:22:00Z");
these are truncated to their calendar date instead of being rejected.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """
    Supported currency codes.

    Codes are matched exactly (case-sensitive) against the configured
    exchange rates.
    """
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    MXN = "MXN"
    ARS = "ARS"
    COP = "COP"
    CLP = "CLP"
    CHF = "CHF"


class AccountType(str, Enum):
    """Kind of account. Purely descriptive, has no effect on balances."""
    CHECKING = "Checking"
    SAVINGS = "Savings"
    BROKERAGE = "Brokerage"
    CREDIT_CARD = "Credit Card"
    CASH = "Cash"


class CategoryKind(str, Enum):
    """
    Which transaction types may reference a category.

    "both" categories can be used by expenses and incomes alike.
    """
    EXPENSE = "expense"
    INCOME = "income"
    BOTH = "both"

    @property
    def allows_expenses(self) -> bool:
        return self in (CategoryKind.EXPENSE, CategoryKind.BOTH)

    @property
    def allows_incomes(self) -> bool:
        return self in (CategoryKind.INCOME, CategoryKind.BOTH)


class Recurrence(str, Enum):
    """Length of a budget window."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


DEFAULT_EXCHANGE_RATES: dict[Currency, Decimal] = {
    Currency.USD: Decimal("1"),
    Currency.EUR: Decimal("1.08"),
    Currency.GBP: Decimal("1.27"),
    Currency.JPY: Decimal("0.0064"),
    Currency.MXN: Decimal("0.058"),
    Currency.ARS: Decimal("0.0011"),
    Currency.COP: Decimal("0.00026"),
    Currency.CLP: Decimal("0.0011"),
    Currency.CHF: Decimal("1.11"),
}


def new_record_id(prefix: str) -> str:
    """Generate a fresh opaque record id, e.g. ``acc-3f9c2a1b7e04``."""
    return f"{prefix}-{uuid4().hex[:12]}"


def coerce_calendar_date(value: Any) -> Any:
    """Truncate datetimes and ISO timestamp strings to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


CalendarDate = Annotated[date, BeforeValidator(coerce_calendar_date)]


# =============================================================================
# BASE RECORD
# =============================================================================

class LedgerRecord(BaseModel):
    """
    Common shape of every stored record.

    Records are frozen. The Record Store replaces them wholesale on update,
    so a stale reference can never observe a half-applied change.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id_prefix: ClassVar[str] = "rec"

    id: str = Field(
        default="",
        max_length=64,
        description="Opaque unique identifier (generated on insert)"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Display name"
    )

    @model_validator(mode="before")
    @classmethod
    def assign_id(cls, data: Any) -> Any:
        """Generate an id for records that are being created."""
        if isinstance(data, dict) and not data.get("id"):
            data = {**data, "id": new_record_id(cls.id_prefix)}
        return data

    def merged(self, changes: dict[str, Any]) -> "LedgerRecord":
        """
        Return a new record with ``changes`` applied and re-validated.

        The id is never changed by a merge.
        """
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if k != "id"})
        return type(self).model_validate(data)


# =============================================================================
# RECORDS
# =============================================================================

class Account(LedgerRecord):
    """A place money lives in. All of its transactions share its currency."""
    id_prefix: ClassVar[str] = "acc"

    type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Account type"
    )
    currency: Currency = Field(
        ...,
        description="Currency every transaction on this account is denominated in"
    )
    initial_amount: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance in the account currency"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=1000
    )


class Category(LedgerRecord):
    """Expense/income classification."""
    id_prefix: ClassVar[str] = "cat"

    kind: CategoryKind = Field(
        default=CategoryKind.EXPENSE,
        description="Which transaction types may use this category"
    )
    budgeted_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Informational budgeted amount (base currency)"
    )


class Expense(LedgerRecord):
    """Money leaving an account, expressed in that account's currency."""
    id_prefix: ClassVar[str] = "exp"

    category_id: str = Field(..., min_length=1)
    account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount in the account currency"
    )
    date: CalendarDate
    budget_id: Optional[str] = Field(
        default=None,
        description="Budget this expense is directly assigned to"
    )


class Income(LedgerRecord):
    """Money entering an account, expressed in that account's currency."""
    id_prefix: ClassVar[str] = "inc"

    account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount in the account currency"
    )
    date: CalendarDate
    category_id: Optional[str] = None


class Transfer(LedgerRecord):
    """
    Money moved between two accounts.

    Only the source amount is stored. What the destination receives is
    derived from the exchange rates at read time.
    """
    id_prefix: ClassVar[str] = "trf"

    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount debited, in the source account currency"
    )
    from_account_id: str = Field(..., min_length=1)
    to_account_id: str = Field(..., min_length=1)
    date: CalendarDate
    note: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_accounts(self) -> "Transfer":
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transfer source and destination must be different accounts")
        return self


class Budget(LedgerRecord):
    """
    A spending ceiling in base currency.

    Expenses count against a budget only when they are directly assigned
    to it through ``Expense.budget_id``. The account/category fields are
    descriptive filters kept for the record store.
    """
    id_prefix: ClassVar[str] = "bud"

    account_id: Optional[str] = None
    category_id: Optional[str] = None
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Target amount in base currency"
    )
    recurrence: Recurrence = Field(default=Recurrence.MONTHLY)
    start_date: CalendarDate
    end_date: Optional[CalendarDate] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "Budget":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def is_active_on(self, day: date) -> bool:
        """Whether the budget covers ``day`` (open-ended when no end date)."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class SavingGoal(LedgerRecord):
    """A target amount being saved towards, in base currency."""
    id_prefix: ClassVar[str] = "goal"

    total_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="May exceed total_amount (over-saving)"
    )
    start_date: CalendarDate
    end_date: CalendarDate

    @model_validator(mode="after")
    def validate_dates(self) -> "SavingGoal":
        if self.end_date < self.start_date:
            raise ValueError("Saving goal end date cannot be before start date")
        return self


class Debt(LedgerRecord):
    """An amount owed, in base currency."""
    id_prefix: ClassVar[str] = "debt"

    current_balance: Decimal = Field(
        ...,
        description="Outstanding balance; expected to be <= total_amount"
    )
    total_amount: Decimal = Field(..., gt=0)
    interest_rate: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Annual interest rate in percent"
    )
    due_date: Optional[CalendarDate] = None


# =============================================================================
# SETTINGS
# =============================================================================

class FinanceSettings(BaseModel):
    """
    Currency and period configuration of a ledger.

    Exchange rates are direct multipliers:
        amount_in_base = amount * exchange_rates[currency]
    """
    model_config = ConfigDict(frozen=True)

    base_currency: Currency = Field(default=Currency.USD)
    month_start_day: int = Field(
        default=25,
        ge=1,
        le=31,
        description="Day of month a reporting period starts on"
    )
    exchange_rates: dict[Currency, Decimal] = Field(
        default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES)
    )

    @field_validator("exchange_rates")
    @classmethod
    def validate_rates(cls, v: dict[Currency, Decimal]) -> dict[Currency, Decimal]:
        """Rates must not be negative."""
        for currency, rate in v.items():
            if rate < 0:
                raise ValueError(f"Exchange rate for {currency.value} cannot be negative")
        return v

    def merged(self, changes: dict[str, Any]) -> "FinanceSettings":
        """Return new settings with ``changes`` applied and re-validated."""
        data = self.model_dump()
        data.update(changes)
        return FinanceSettings.model_validate(data)


# =============================================================================
# RECORD KINDS & LEDGER SNAPSHOT
# =============================================================================

class RecordKind(str, Enum):
    """
    Collections held by the Record Store.

    The value doubles as the ledger attribute name and the storage
    table/worksheet name.
    """
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    EXPENSES = "expenses"
    INCOMES = "incomes"
    TRANSFERS = "transfers"
    BUDGETS = "budgets"
    SAVING_GOALS = "saving_goals"
    DEBTS = "debts"

    @property
    def model(self) -> type[LedgerRecord]:
        return RECORD_MODELS[self]


RECORD_MODELS: dict[RecordKind, type[LedgerRecord]] = {
    RecordKind.ACCOUNTS: Account,
    RecordKind.CATEGORIES: Category,
    RecordKind.EXPENSES: Expense,
    RecordKind.INCOMES: Income,
    RecordKind.TRANSFERS: Transfer,
    RecordKind.BUDGETS: Budget,
    RecordKind.SAVING_GOALS: SavingGoal,
    RecordKind.DEBTS: Debt,
}


class Ledger(BaseModel):
    """
    Read-only snapshot of every record plus settings.

    This is the only state the accounting engine sees. It is built by the
    Record Store per computation and never mutated.
    """
    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    categories: tuple[Category, ...] = ()
    expenses: tuple[Expense, ...] = ()
    incomes: tuple[Income, ...] = ()
    transfers: tuple[Transfer, ...] = ()
    budgets: tuple[Budget, ...] = ()
    saving_goals: tuple[SavingGoal, ...] = ()
    debts: tuple[Debt, ...] = ()
    settings: FinanceSettings = Field(default_factory=FinanceSettings)

    def records(self, kind: RecordKind) -> tuple[LedgerRecord, ...]:
        return getattr(self, kind.value)

    def find(self, kind: RecordKind, record_id: Optional[str]) -> Optional[LedgerRecord]:
        """Look up a record by id; None when absent."""
        if not record_id:
            return None
        for record in self.records(kind):
            if record.id == record_id:
                return record
        return None

    def index(self, kind: RecordKind) -> dict[str, LedgerRecord]:
        """Map of id -> record for one collection."""
        return {record.id: record for record in self.records(kind)}
