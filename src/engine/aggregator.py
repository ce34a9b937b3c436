"""
Ledger Aggregator

Derives every reporting figure from a Ledger snapshot: account balances,
category spend, budget consumption, saving-goal and debt progress, the
daily cash-flow series and transfer conversions.

DESIGN DECISION: Aggregation is a pure function of (ledger, period,
converter). Nothing is cached between calls and nothing is written, so
the same inputs always produce the same report and an Aggregator can be
shared freely.

DESIGN DECISION: Dangling references never raise.
A record pointing at a deleted account contributes zero (its currency is
unknown), a record pointing at a deleted category is reported under
"Unknown". Both show up in integrity_notices() so callers can surface them.

CANONICAL BALANCE FORMULA (all converted with the account's currency):
    initial + incomes - expenses - transfers out + transfers received
"""

from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import structlog

from src.engine.currency import CurrencyConverter
from src.engine.period import current_recurrence_window, period_for
from src.models.ledger import (
    Account,
    Budget,
    Debt,
    Ledger,
    RecordKind,
    SavingGoal,
    Transfer,
)
from src.models.reports import (
    AccountBalance,
    BudgetConsumption,
    BudgetStatus,
    CategorySpend,
    DailyPoint,
    DashboardSummary,
    DataIntegrityNotice,
    DebtProgress,
    Period,
    SavingGoalProgress,
    TransferConversion,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
UNKNOWN_CATEGORY = "Unknown"


def quantize(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_percent(value: Decimal) -> Decimal:
    return min(max(value, ZERO), HUNDRED)


class Aggregator:
    """
    Computes reports over one Ledger snapshot.

    Args:
        ledger: Snapshot to report on
        period: Reporting window (defaults to the period containing ``today``)
        converter: Currency converter (defaults to one built from the ledger settings)
        today: Reference date for "current" figures (defaults to date.today())
        budget_warning_percent: Percent used above which a budget is near its limit
    """

    def __init__(
        self,
        ledger: Ledger,
        period: Optional[Period] = None,
        converter: Optional[CurrencyConverter] = None,
        today: Optional[date] = None,
        budget_warning_percent: Decimal = Decimal("80"),
    ):
        self._ledger = ledger
        self._today = today or date.today()
        self._period = period or period_for(self._today, ledger.settings.month_start_day)
        self._converter = converter or CurrencyConverter(ledger.settings)
        self._warning_percent = budget_warning_percent
        self._accounts: dict[str, Account] = ledger.index(RecordKind.ACCOUNTS)
        self._category_names = {c.id: c.name for c in ledger.categories}
        self._logger = structlog.get_logger(__name__)

    @property
    def period(self) -> Period:
        return self._period

    @property
    def converter(self) -> CurrencyConverter:
        return self._converter

    def _to_base(self, amount: Decimal, account_id: str) -> Optional[Decimal]:
        """Convert with the account's currency; None when the account is gone."""
        account = self._accounts.get(account_id)
        if account is None:
            return None
        return self._converter.convert_to_base(amount, account.currency)

    # =========================================================================
    # ACCOUNTS & TRANSFERS
    # =========================================================================

    def transfer_conversion(self, transfer: Transfer) -> TransferConversion:
        """
        What the destination account receives for a transfer.

        A missing account is treated as holding the base currency.
        """
        base = self._converter.base_currency
        source = self._accounts.get(transfer.from_account_id)
        destination = self._accounts.get(transfer.to_account_id)
        from_currency = source.currency if source else base
        to_currency = destination.currency if destination else base

        received = self._converter.convert(transfer.amount, from_currency, to_currency)

        return TransferConversion(
            transfer_id=transfer.id,
            from_account_id=transfer.from_account_id,
            to_account_id=transfer.to_account_id,
            from_currency=from_currency,
            to_currency=to_currency,
            amount=transfer.amount,
            received_amount=quantize(received),
        )

    def transfer_conversions(self) -> list[TransferConversion]:
        return [self.transfer_conversion(t) for t in self._ledger.transfers]

    def account_balance(self, account_id: str) -> Optional[AccountBalance]:
        """All-time balance of one account, or None if it doesn't exist."""
        account = self._accounts.get(account_id)
        if account is None:
            return None

        incomes = sum(
            (i.amount for i in self._ledger.incomes if i.account_id == account_id),
            ZERO,
        )
        expenses = sum(
            (e.amount for e in self._ledger.expenses if e.account_id == account_id),
            ZERO,
        )
        transfers_out = sum(
            (t.amount for t in self._ledger.transfers if t.from_account_id == account_id),
            ZERO,
        )

        transfers_in = ZERO
        for transfer in self._ledger.transfers:
            if transfer.to_account_id != account_id:
                continue
            source = self._accounts.get(transfer.from_account_id)
            if source is None:
                # Unknown source currency: nothing sensible to credit
                self._logger.debug(
                    "skipped_dangling_transfer",
                    transfer_id=transfer.id,
                    from_account_id=transfer.from_account_id,
                )
                continue
            transfers_in += self._converter.convert(
                transfer.amount, source.currency, account.currency
            )

        native = account.initial_amount + incomes - expenses - transfers_out + transfers_in

        def to_base(amount: Decimal) -> Decimal:
            return self._converter.convert_to_base(amount, account.currency)

        return AccountBalance(
            account_id=account.id,
            account_name=account.name,
            currency=account.currency,
            initial_amount=quantize(to_base(account.initial_amount)),
            total_incomes=quantize(to_base(incomes)),
            total_expenses=quantize(to_base(expenses)),
            transfers_in=quantize(to_base(transfers_in)),
            transfers_out=quantize(to_base(transfers_out)),
            balance=quantize(to_base(native)),
            native_balance=quantize(native),
        )

    def account_balances(self) -> list[AccountBalance]:
        return [self.account_balance(a.id) for a in self._ledger.accounts]

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def category_spend(self) -> list[CategorySpend]:
        """
        Converted expenses within the period, grouped by category.

        Largest spend first.
        """
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[str, int] = defaultdict(int)

        for expense in self._ledger.expenses:
            if not self._period.contains(expense.date):
                continue
            converted = self._to_base(expense.amount, expense.account_id)
            if converted is None:
                continue
            totals[expense.category_id] += converted
            counts[expense.category_id] += 1

        rows = [
            CategorySpend(
                category_id=category_id,
                category_name=self._category_names.get(category_id, UNKNOWN_CATEGORY),
                amount=quantize(total),
                expense_count=counts[category_id],
            )
            for category_id, total in totals.items()
        ]
        rows.sort(key=lambda r: (-r.amount, r.category_name))
        return rows

    # =========================================================================
    # BUDGETS, GOALS, DEBTS
    # =========================================================================

    def budget_consumption(self, budget: Budget) -> BudgetConsumption:
        """
        How much of ``budget`` the period's directly assigned expenses use.
        """
        matched = [
            e for e in self._ledger.expenses
            if e.budget_id == budget.id and self._period.contains(e.date)
        ]

        spent = ZERO
        counted = 0
        for expense in matched:
            converted = self._to_base(expense.amount, expense.account_id)
            if converted is not None:
                spent += converted
                counted += 1

        percent_used = spent / budget.amount * HUNDRED if budget.amount > 0 else ZERO
        recurrence = current_recurrence_window(budget.start_date, budget.recurrence, self._today)

        if percent_used > HUNDRED:
            status = BudgetStatus.EXCEEDED
        elif percent_used > self._warning_percent:
            status = BudgetStatus.NEAR_LIMIT
        else:
            status = BudgetStatus.ON_TRACK

        return BudgetConsumption(
            budget_id=budget.id,
            budget_name=budget.name,
            amount=quantize(budget.amount),
            spent=quantize(spent),
            remaining=quantize(budget.amount - spent),
            percent_used=quantize(percent_used),
            display_percent=quantize(min(percent_used, HUNDRED)),
            exceeded_amount=(
                quantize(spent - budget.amount) if status == BudgetStatus.EXCEEDED else None
            ),
            expense_count=counted,
            status=status,
            window_start=self._period.start,
            window_end=self._period.end,
            recurrence_start=recurrence.start,
            recurrence_end=recurrence.end,
            is_active=budget.is_active_on(self._today),
        )

    def budget_consumptions(self) -> list[BudgetConsumption]:
        return [self.budget_consumption(b) for b in self._ledger.budgets]

    def saving_goal_progress(self, goal: SavingGoal) -> SavingGoalProgress:
        percent = goal.current_amount / goal.total_amount * HUNDRED
        return SavingGoalProgress(
            goal_id=goal.id,
            goal_name=goal.name,
            total_amount=quantize(goal.total_amount),
            current_amount=quantize(goal.current_amount),
            amount_remaining=quantize(max(goal.total_amount - goal.current_amount, ZERO)),
            percent=quantize(clamp_percent(percent)),
            days_remaining=(goal.end_date - self._today).days,
        )

    def saving_goals_progress(self) -> list[SavingGoalProgress]:
        return [self.saving_goal_progress(g) for g in self._ledger.saving_goals]

    def debt_progress(self, debt: Debt) -> DebtProgress:
        percent = clamp_percent((1 - debt.current_balance / debt.total_amount) * HUNDRED)
        return DebtProgress(
            debt_id=debt.id,
            debt_name=debt.name,
            current_balance=quantize(debt.current_balance),
            total_amount=quantize(debt.total_amount),
            percent_paid=quantize(percent),
            remaining_percent=quantize(HUNDRED - percent),
        )

    def debts_progress(self) -> list[DebtProgress]:
        return [self.debt_progress(d) for d in self._ledger.debts]

    # =========================================================================
    # TIME SERIES & DASHBOARD
    # =========================================================================

    def _daily_totals(self) -> tuple[dict[date, Decimal], dict[date, Decimal]]:
        expenses: dict[date, Decimal] = defaultdict(lambda: ZERO)
        incomes: dict[date, Decimal] = defaultdict(lambda: ZERO)

        for expense in self._ledger.expenses:
            if self._period.contains(expense.date):
                converted = self._to_base(expense.amount, expense.account_id)
                if converted is not None:
                    expenses[expense.date] += converted

        for income in self._ledger.incomes:
            if self._period.contains(income.date):
                converted = self._to_base(income.amount, income.account_id)
                if converted is not None:
                    incomes[income.date] += converted

        return expenses, incomes

    def daily_series(self) -> list[DailyPoint]:
        """One point per calendar day of the period, including empty days."""
        expenses, incomes = self._daily_totals()
        return [
            DailyPoint(
                day=day,
                expenses=quantize(expenses.get(day, ZERO)),
                incomes=quantize(incomes.get(day, ZERO)),
            )
            for day in self._period.days()
        ]

    def integrity_notices(self) -> list[DataIntegrityNotice]:
        """Every reference to an account, category or budget that doesn't exist."""
        category_ids = set(self._category_names)
        budget_ids = {b.id for b in self._ledger.budgets}
        notices: list[DataIntegrityNotice] = []

        def check(kind: RecordKind, record_id: str, field: str, target: Optional[str], known) -> None:
            if target and target not in known:
                notices.append(DataIntegrityNotice(
                    record_kind=kind,
                    record_id=record_id,
                    field=field,
                    missing_id=target,
                    message=f"{kind.value} record {record_id} references missing {field} {target}",
                ))

        for e in self._ledger.expenses:
            check(RecordKind.EXPENSES, e.id, "account_id", e.account_id, self._accounts)
            check(RecordKind.EXPENSES, e.id, "category_id", e.category_id, category_ids)
            check(RecordKind.EXPENSES, e.id, "budget_id", e.budget_id, budget_ids)
        for i in self._ledger.incomes:
            check(RecordKind.INCOMES, i.id, "account_id", i.account_id, self._accounts)
            check(RecordKind.INCOMES, i.id, "category_id", i.category_id, category_ids)
        for t in self._ledger.transfers:
            check(RecordKind.TRANSFERS, t.id, "from_account_id", t.from_account_id, self._accounts)
            check(RecordKind.TRANSFERS, t.id, "to_account_id", t.to_account_id, self._accounts)
        for b in self._ledger.budgets:
            check(RecordKind.BUDGETS, b.id, "account_id", b.account_id, self._accounts)
            check(RecordKind.BUDGETS, b.id, "category_id", b.category_id, category_ids)

        for notice in notices:
            self._logger.warning(
                "data_integrity_notice",
                record_kind=notice.record_kind.value,
                record_id=notice.record_id,
                field=notice.field,
                missing_id=notice.missing_id,
            )
        return notices

    def dashboard(self) -> DashboardSummary:
        """Overview figures for the period."""
        expenses, incomes = self._daily_totals()
        total_expenses = sum(expenses.values(), ZERO)
        total_incomes = sum(incomes.values(), ZERO)

        return DashboardSummary(
            period=self._period,
            base_currency=self._converter.base_currency,
            total_incomes=quantize(total_incomes),
            total_expenses=quantize(total_expenses),
            net_balance=quantize(total_incomes - total_expenses),
            daily=self.daily_series(),
            by_category=self.category_spend(),
            budgets=self.budget_consumptions(),
            notices=self.integrity_notices(),
        )
