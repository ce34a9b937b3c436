"""
Report, Validation & Query Models

Everything the accounting engine, the validator and the query executor
hand back to callers.

DESIGN DECISION: Reports carry Decimal values already rounded to cents.
The engine computes with full precision and only quantizes at the edge,
so totals built from rounded report rows may differ from the engine's
own totals by a cent.
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.ledger import Currency, RecordKind


# =============================================================================
# PERIOD
# =============================================================================

class Period(BaseModel):
    """
    Inclusive window of calendar days.

    Both boundary days belong to the period: as timestamps it spans
    start-of-day of ``start`` to end-of-day of ``end``.
    """
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        return datetime.combine(self.start, time.min)

    @property
    def end_at(self) -> datetime:
        return datetime.combine(self.end, time.max)

    @property
    def length_days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        return self.start <= day <= self.end

    def days(self) -> Iterator[date]:
        """Yield every calendar day of the period in order."""
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)


# =============================================================================
# AGGREGATES
# =============================================================================

class AccountBalance(BaseModel):
    """
    All-time running balance of one account.

    Every figure except ``native_balance`` is in base currency.
    """
    account_id: str
    account_name: str
    currency: Currency
    initial_amount: Decimal
    total_incomes: Decimal
    total_expenses: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    balance: Decimal = Field(
        ...,
        description="Balance in base currency"
    )
    native_balance: Decimal = Field(
        ...,
        description="Balance in the account's own currency"
    )


class CategorySpend(BaseModel):
    """Converted spend of one category within a period."""
    category_id: str
    category_name: str
    amount: Decimal
    expense_count: int = Field(ge=0)


class BudgetStatus(str, Enum):
    """Traffic-light state of a budget."""
    ON_TRACK = "on_track"
    NEAR_LIMIT = "near_limit"
    EXCEEDED = "exceeded"


class BudgetConsumption(BaseModel):
    """
    How much of a budget the current period has used.

    ``percent_used`` is uncapped; ``display_percent`` is capped at 100 for
    progress bars. ``exceeded_amount`` is set only when the budget is over.
    Spending is measured over the reporting period (``window_*``). The
    budget's own recurrence window containing today is reported beside it
    (``recurrence_*``), along with whether the budget is active today.
    """
    budget_id: str
    budget_name: str
    amount: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: Decimal
    display_percent: Decimal
    exceeded_amount: Optional[Decimal] = None
    expense_count: int = Field(ge=0)
    status: BudgetStatus
    window_start: date
    window_end: date
    recurrence_start: date
    recurrence_end: date
    is_active: bool = Field(
        description="Whether today falls between the budget start and end dates"
    )


class SavingGoalProgress(BaseModel):
    """Progress of a saving goal."""
    goal_id: str
    goal_name: str
    total_amount: Decimal
    current_amount: Decimal
    amount_remaining: Decimal
    percent: Decimal = Field(ge=0, le=100)
    days_remaining: int = Field(
        ...,
        description="Whole days until the end date; negative when overdue"
    )


class DebtProgress(BaseModel):
    """Payoff progress of a debt."""
    debt_id: str
    debt_name: str
    current_balance: Decimal
    total_amount: Decimal
    percent_paid: Decimal = Field(ge=0, le=100)
    remaining_percent: Decimal = Field(ge=0, le=100)


class DailyPoint(BaseModel):
    """Converted cash flow of one calendar day."""
    day: date
    expenses: Decimal
    incomes: Decimal

    @property
    def label(self) -> str:
        return self.day.strftime("%m/%d")


class TransferConversion(BaseModel):
    """What a transfer takes from one account and gives to the other."""
    transfer_id: str
    from_account_id: str
    to_account_id: str
    from_currency: Optional[Currency] = None
    to_currency: Optional[Currency] = None
    amount: Decimal
    received_amount: Decimal


class DataIntegrityNotice(BaseModel):
    """
    A record that points at something that no longer exists.

    Aggregations skip the dangling contribution and report it here
    instead of failing.
    """
    record_kind: RecordKind
    record_id: str
    field: str
    missing_id: str
    message: str


class DashboardSummary(BaseModel):
    """Figures for the overview screen, all in base currency."""
    period: Period
    base_currency: Currency
    total_incomes: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    daily: list[DailyPoint] = Field(default_factory=list)
    by_category: list[CategorySpend] = Field(default_factory=list)
    budgets: list[BudgetConsumption] = Field(default_factory=list)
    notices: list[DataIntegrityNotice] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing_reference', 'kind_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating a record against the ledger it will join.

    Errors block the write; warnings are reported but allowed.
    """

    record_kind: RecordKind
    record_id: str
    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# QUERY MODELS
# =============================================================================

class RecordQuery(BaseModel):
    """
    Filters for the expense, income and transfer lists.

    Every filter is optional; unset filters match everything. Filters that
    don't apply to a record type (e.g. budget_id on incomes) are ignored.
    """

    query_id: UUID = Field(
        default_factory=uuid4
    )

    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the record name"
    )
    category_id: Optional[str] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Matches either side of a transfer"
    )
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    budget_id: Optional[str] = None
    date_from: Optional[date] = Field(
        default=None,
        description="Inclusive lower bound"
    )
    date_to: Optional[date] = Field(
        default=None,
        description="Inclusive upper bound"
    )

    limit: Optional[int] = Field(
        default=None,
        ge=1,
        le=10000,
        description="Maximum results to return (newest first)"
    )


class QueryResult(BaseModel):
    """
    Records matching a RecordQuery, newest first.

    ``data_found`` is False when nothing matched, so callers can show an
    explicit "no data" state instead of an empty table.
    """

    query_id: UUID
    record_kind: RecordKind
    data_found: bool
    result_count: int
    total_matches: int = Field(
        ...,
        description="Matches before the limit was applied"
    )
    records: list[Any] = Field(default_factory=list)
    query_description: str = ""
