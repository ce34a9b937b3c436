"""Tests for the accounting engine's aggregate derivations."""

import pytest
from datetime import date
from decimal import Decimal

from src.engine.aggregator import UNKNOWN_CATEGORY, Aggregator, quantize
from src.engine.currency import CurrencyConverter, MissingExchangeRateError
from src.models.ledger import (
    Account,
    Budget,
    Currency,
    Debt,
    Expense,
    FinanceSettings,
    Income,
    Ledger,
    RecordKind,
    Recurrence,
    SavingGoal,
    Transfer,
)
from src.models.reports import BudgetStatus, Period


def expense(id, amount, day, account_id="acc-usd", category_id="cat-food", budget_id=None, name="Expense"):
    return Expense(
        id=id,
        name=name,
        amount=Decimal(amount),
        date=day,
        account_id=account_id,
        category_id=category_id,
        budget_id=budget_id,
    )


def income(id, amount, day, account_id="acc-usd", name="Income"):
    return Income(id=id, name=name, amount=Decimal(amount), date=day, account_id=account_id)


def with_records(ledger: Ledger, **records) -> Ledger:
    return ledger.model_copy(update={k: tuple(v) for k, v in records.items()})


class TestQuantize:
    """Tests for cent rounding."""

    def test_half_up(self):
        """Test that halves round away from zero."""
        assert quantize(Decimal("0.125")) == Decimal("0.13")
        assert quantize(Decimal("92.5925")) == Decimal("92.59")
        assert quantize(Decimal("-0.125")) == Decimal("-0.13")


class TestAccountBalances:
    """Tests for all-time account balances."""

    def test_initial_plus_income_minus_expense(self, base_ledger, today):
        """Test the basic running balance."""
        ledger = with_records(
            base_ledger,
            incomes=[income("inc-1", "50", date(2024, 3, 1))],
            expenses=[expense("exp-1", "30", date(2024, 3, 2))],
        )
        balance = Aggregator(ledger, today=today).account_balance("acc-usd")
        assert balance.balance == Decimal("120.00")
        assert balance.native_balance == Decimal("120.00")
        assert balance.total_incomes == Decimal("50.00")
        assert balance.total_expenses == Decimal("30.00")

    def test_balance_is_all_time(self, base_ledger, today):
        """Test that records outside the current period still count."""
        ledger = with_records(
            base_ledger,
            incomes=[income("inc-1", "500", date(2020, 1, 1))],
        )
        balance = Aggregator(ledger, today=today).account_balance("acc-usd")
        assert balance.balance == Decimal("600.00")

    def test_foreign_account_converted(self, base_ledger, today):
        """Test that a EUR account is reported in base and native currency."""
        ledger = with_records(
            base_ledger,
            incomes=[income("inc-1", "100", date(2024, 3, 1), account_id="acc-eur")],
        )
        balance = Aggregator(ledger, today=today).account_balance("acc-eur")
        assert balance.currency == Currency.EUR
        assert balance.native_balance == Decimal("100.00")
        assert balance.balance == Decimal("108.00")

    def test_transfers_move_money_between_currencies(self, base_ledger, today):
        """Test that transfers debit the source and credit the converted amount."""
        ledger = with_records(
            base_ledger,
            transfers=[Transfer(
                id="trf-1",
                name="To savings",
                amount=Decimal("100"),
                from_account_id="acc-usd",
                to_account_id="acc-eur",
                date=date(2024, 3, 5),
            )],
        )
        aggregator = Aggregator(ledger, today=today)

        source = aggregator.account_balance("acc-usd")
        assert source.transfers_out == Decimal("100.00")
        assert source.balance == Decimal("0.00")

        destination = aggregator.account_balance("acc-eur")
        assert destination.native_balance == Decimal("92.59")
        assert destination.transfers_in == Decimal("100.00")
        assert destination.balance == Decimal("100.00")

    def test_transfer_from_missing_account_not_credited(self, base_ledger, today):
        """Test that a dangling transfer source credits nothing."""
        ledger = with_records(
            base_ledger,
            transfers=[Transfer(
                id="trf-1",
                name="Ghost",
                amount=Decimal("100"),
                from_account_id="acc-gone",
                to_account_id="acc-usd",
                date=date(2024, 3, 5),
            )],
        )
        balance = Aggregator(ledger, today=today).account_balance("acc-usd")
        assert balance.transfers_in == Decimal("0.00")
        assert balance.balance == Decimal("100.00")

    def test_unknown_account_returns_none(self, base_ledger, today):
        """Test that unknown accounts have no balance."""
        assert Aggregator(base_ledger, today=today).account_balance("acc-gone") is None

    def test_account_balances_lists_every_account(self, base_ledger, today):
        """Test one balance row per account."""
        balances = Aggregator(base_ledger, today=today).account_balances()
        assert [b.account_id for b in balances] == ["acc-usd", "acc-eur"]


class TestCategorySpend:
    """Tests for per-category spend within the period."""

    def test_grouped_converted_and_sorted(self, base_ledger, today):
        """Test grouping, conversion and largest-first ordering."""
        ledger = with_records(
            base_ledger,
            expenses=[
                expense("exp-1", "30", date(2024, 3, 1)),
                expense("exp-2", "10", date(2024, 3, 2), account_id="acc-eur"),
                expense("exp-3", "5", date(2024, 3, 3), category_id="cat-misc"),
                # Outside the period
                expense("exp-4", "999", date(2024, 2, 24)),
            ],
        )
        rows = Aggregator(ledger, today=today).category_spend()
        assert [(r.category_name, r.amount, r.expense_count) for r in rows] == [
            ("Food", Decimal("40.80"), 2),
            ("Misc", Decimal("5.00"), 1),
        ]

    def test_unknown_category(self, base_ledger, today):
        """Test that deleted categories are reported as Unknown."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "20", date(2024, 3, 1), category_id="cat-gone")],
        )
        rows = Aggregator(ledger, today=today).category_spend()
        assert rows[0].category_name == UNKNOWN_CATEGORY
        assert rows[0].amount == Decimal("20.00")

    def test_missing_account_contributes_zero(self, base_ledger, today):
        """Test that expenses on deleted accounts are skipped."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "20", date(2024, 3, 1), account_id="acc-gone")],
        )
        assert Aggregator(ledger, today=today).category_spend() == []

    def test_explicit_period(self, base_ledger, today):
        """Test reporting over a caller-supplied window."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "20", date(2024, 1, 10))],
        )
        period = Period(start=date(2024, 1, 1), end=date(2024, 1, 31))
        aggregator = Aggregator(ledger, period=period, today=today)
        assert aggregator.period == period
        assert aggregator.category_spend()[0].amount == Decimal("20.00")


class TestBudgetConsumption:
    """Tests for budget consumption and overage."""

    def _consumption(self, base_ledger, today, *amounts):
        expenses = [
            expense(f"exp-{i}", amount, date(2024, 3, 1), budget_id="bud-food")
            for i, amount in enumerate(amounts)
        ]
        ledger = with_records(base_ledger, expenses=expenses)
        return Aggregator(ledger, today=today).budget_consumption(ledger.budgets[0])

    def test_exceeded_budget(self, base_ledger, today):
        """Test an over-spent budget."""
        result = self._consumption(base_ledger, today, "450")
        assert result.spent == Decimal("450.00")
        assert result.remaining == Decimal("-50.00")
        assert result.percent_used == Decimal("112.50")
        assert result.display_percent == Decimal("100.00")
        assert result.exceeded_amount == Decimal("50.00")
        assert result.status == BudgetStatus.EXCEEDED

    def test_near_limit(self, base_ledger, today):
        """Test the warning threshold."""
        result = self._consumption(base_ledger, today, "200", "150")
        assert result.percent_used == Decimal("87.50")
        assert result.status == BudgetStatus.NEAR_LIMIT
        assert result.exceeded_amount is None
        assert result.expense_count == 2

    def test_on_track(self, base_ledger, today):
        """Test a budget well under its limit."""
        result = self._consumption(base_ledger, today, "100")
        assert result.percent_used == Decimal("25.00")
        assert result.status == BudgetStatus.ON_TRACK
        assert result.window_start == date(2024, 2, 25)
        assert result.window_end == date(2024, 3, 24)

    def test_exactly_at_limit_is_not_exceeded(self, base_ledger, today):
        """Test that 100% used is not an overage."""
        result = self._consumption(base_ledger, today, "400")
        assert result.status == BudgetStatus.NEAR_LIMIT
        assert result.remaining == Decimal("0.00")
        assert result.exceeded_amount is None

    def test_custom_warning_threshold(self, base_ledger, today):
        """Test that the near-limit threshold is configurable."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "240", date(2024, 3, 1), budget_id="bud-food")],
        )
        aggregator = Aggregator(ledger, today=today, budget_warning_percent=Decimal("50"))
        assert aggregator.budget_consumption(ledger.budgets[0]).status == BudgetStatus.NEAR_LIMIT

    def test_only_assigned_in_period_expenses_count(self, base_ledger, today):
        """Test that unassigned and out-of-period expenses are ignored."""
        ledger = with_records(
            base_ledger,
            expenses=[
                expense("exp-1", "100", date(2024, 3, 1), budget_id="bud-food"),
                expense("exp-2", "100", date(2024, 3, 1)),
                expense("exp-3", "100", date(2024, 3, 25), budget_id="bud-food"),
            ],
        )
        result = Aggregator(ledger, today=today).budget_consumption(ledger.budgets[0])
        assert result.spent == Decimal("100.00")
        assert result.expense_count == 1

    def test_foreign_expenses_converted(self, base_ledger, today):
        """Test that budget spend is measured in base currency."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "100", date(2024, 3, 1), account_id="acc-eur", budget_id="bud-food")],
        )
        result = Aggregator(ledger, today=today).budget_consumption(ledger.budgets[0])
        assert result.spent == Decimal("108.00")

    def test_dangling_account_expense_not_counted(self, base_ledger, today):
        """Test that expenses that add nothing to spent aren't counted either."""
        ledger = with_records(
            base_ledger,
            expenses=[
                expense("exp-1", "100", date(2024, 3, 1), budget_id="bud-food"),
                expense("exp-2", "50", date(2024, 3, 2), account_id="acc-gone", budget_id="bud-food"),
            ],
        )
        result = Aggregator(ledger, today=today).budget_consumption(ledger.budgets[0])
        assert result.spent == Decimal("100.00")
        assert result.expense_count == 1

    def test_recurrence_window_reported(self, base_ledger, today):
        """Test the budget's own window alongside the reporting period."""
        result = self._consumption(base_ledger, today, "10")
        assert result.recurrence_start == date(2024, 3, 1)
        assert result.recurrence_end == date(2024, 3, 31)
        assert result.is_active

    def test_weekly_recurrence_window(self, base_ledger, today):
        budget = Budget(
            id="bud-week",
            name="Coffee",
            amount=Decimal("20"),
            recurrence=Recurrence.WEEKLY,
            start_date=date(2024, 3, 4),
        )
        result = Aggregator(with_records(base_ledger, budgets=[budget]), today=today).budget_consumption(budget)
        assert result.recurrence_start == date(2024, 3, 4)
        assert result.recurrence_end == date(2024, 3, 10)

    def test_ended_budget_inactive(self, base_ledger, today):
        """Test that a budget past its end date is flagged inactive."""
        budget = Budget(
            id="bud-old",
            name="Winter",
            amount=Decimal("100"),
            start_date=date(2023, 12, 1),
            end_date=date(2024, 2, 29),
        )
        result = Aggregator(with_records(base_ledger, budgets=[budget]), today=today).budget_consumption(budget)
        assert not result.is_active

    def test_zero_amount_budget(self, base_ledger, today):
        """Test that a zero budget reports 0% instead of dividing by zero."""
        budget = Budget(id="bud-zero", name="Nothing", amount=Decimal("0"), start_date=date(2024, 1, 1))
        ledger = with_records(
            base_ledger,
            budgets=[budget],
            expenses=[expense("exp-1", "10", date(2024, 3, 1), budget_id="bud-zero")],
        )
        result = Aggregator(ledger, today=today).budget_consumption(budget)
        assert result.percent_used == Decimal("0.00")
        assert result.remaining == Decimal("-10.00")

    def test_percent_monotonic_in_added_expenses(self, base_ledger, today):
        """Test that adding in-period expenses never lowers percent used."""
        previous = Decimal("-1")
        amounts = []
        for amount in ("10", "0.01", "90", "300", "55.55"):
            amounts.append(amount)
            percent = self._consumption(base_ledger, today, *amounts).percent_used
            assert percent >= previous
            previous = percent


class TestGoalsAndDebts:
    """Tests for saving goal and debt progress."""

    def _goal(self, current, total="200"):
        return SavingGoal(
            id="goal-1",
            name="Holiday",
            total_amount=Decimal(total),
            current_amount=Decimal(current),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 20),
        )

    def test_goal_progress(self, today):
        """Test percent, remaining amount and days left."""
        progress = Aggregator(Ledger(), today=today).saving_goal_progress(self._goal("50"))
        assert progress.percent == Decimal("25.00")
        assert progress.amount_remaining == Decimal("150.00")
        assert progress.days_remaining == 10

    def test_goal_over_saved_is_clamped(self, today):
        """Test that over-saving caps at 100% with nothing remaining."""
        progress = Aggregator(Ledger(), today=today).saving_goal_progress(self._goal("300"))
        assert progress.percent == Decimal("100.00")
        assert progress.amount_remaining == Decimal("0.00")

    def test_goal_overdue_has_negative_days(self):
        """Test days remaining after the end date."""
        progress = Aggregator(Ledger(), today=date(2024, 3, 25)).saving_goal_progress(self._goal("0"))
        assert progress.days_remaining == -5
        assert progress.percent == Decimal("0.00")

    def test_debt_progress(self, today):
        """Test payoff percentage."""
        debt = Debt(id="debt-1", name="Car", current_balance=Decimal("250"), total_amount=Decimal("1000"))
        progress = Aggregator(Ledger(), today=today).debt_progress(debt)
        assert progress.percent_paid == Decimal("75.00")
        assert progress.remaining_percent == Decimal("25.00")

    def test_debt_balance_above_total_is_clamped(self, today):
        """Test that a grown balance reports 0% paid."""
        debt = Debt(id="debt-1", name="Card", current_balance=Decimal("1200"), total_amount=Decimal("1000"))
        progress = Aggregator(Ledger(), today=today).debt_progress(debt)
        assert progress.percent_paid == Decimal("0.00")
        assert progress.remaining_percent == Decimal("100.00")

    def test_debt_overpaid_is_clamped(self, today):
        """Test that a negative balance reports 100% paid."""
        debt = Debt(id="debt-1", name="Loan", current_balance=Decimal("-10"), total_amount=Decimal("1000"))
        progress = Aggregator(Ledger(), today=today).debt_progress(debt)
        assert progress.percent_paid == Decimal("100.00")
        assert progress.remaining_percent == Decimal("0.00")


class TestTransferConversion:
    """Tests for what transfer destinations receive."""

    def test_cross_currency(self, base_ledger, today):
        """Test a USD to EUR transfer."""
        transfer = Transfer(
            id="trf-1",
            name="Move",
            amount=Decimal("100"),
            from_account_id="acc-usd",
            to_account_id="acc-eur",
            date=date(2024, 3, 1),
        )
        conversion = Aggregator(base_ledger, today=today).transfer_conversion(transfer)
        assert conversion.from_currency == Currency.USD
        assert conversion.to_currency == Currency.EUR
        assert conversion.received_amount == Decimal("92.59")

    def test_same_currency(self, base_ledger, today):
        """Test that same-currency transfers arrive unchanged."""
        other = Account(id="acc-usd-2", name="Cash", currency=Currency.USD)
        ledger = with_records(base_ledger, accounts=[*base_ledger.accounts, other])
        transfer = Transfer(
            id="trf-1",
            name="Withdraw",
            amount=Decimal("40"),
            from_account_id="acc-usd",
            to_account_id="acc-usd-2",
            date=date(2024, 3, 1),
        )
        assert Aggregator(ledger, today=today).transfer_conversion(transfer).received_amount == Decimal("40.00")


class TestDailySeriesAndDashboard:
    """Tests for the daily series, integrity notices and the dashboard."""

    def test_daily_series_covers_every_day(self, base_ledger, today):
        """Test one point per calendar day, including empty days."""
        ledger = with_records(
            base_ledger,
            expenses=[
                expense("exp-1", "10", date(2024, 3, 1)),
                expense("exp-2", "5", date(2024, 3, 1), account_id="acc-eur"),
            ],
            incomes=[income("inc-1", "100", date(2024, 2, 25))],
        )
        series = Aggregator(ledger, today=today).daily_series()
        assert len(series) == 29
        assert series[0].day == date(2024, 2, 25)
        assert series[0].incomes == Decimal("100.00")
        march_first = next(p for p in series if p.day == date(2024, 3, 1))
        assert march_first.expenses == Decimal("15.40")
        assert march_first.label == "03/01"
        assert series[-1].expenses == Decimal("0.00")

    def test_integrity_notices(self, base_ledger, today):
        """Test that every dangling reference is reported."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "10", date(2024, 3, 1), account_id="acc-gone", budget_id="bud-gone")],
            incomes=[Income(
                id="inc-1",
                name="Refund",
                amount=Decimal("5"),
                date=date(2024, 3, 1),
                account_id="acc-usd",
                category_id="cat-gone",
            )],
        )
        notices = Aggregator(ledger, today=today).integrity_notices()
        found = {(n.record_kind, n.record_id, n.field, n.missing_id) for n in notices}
        assert found == {
            (RecordKind.EXPENSES, "exp-1", "account_id", "acc-gone"),
            (RecordKind.EXPENSES, "exp-1", "budget_id", "bud-gone"),
            (RecordKind.INCOMES, "inc-1", "category_id", "cat-gone"),
        }

    def test_clean_ledger_has_no_notices(self, base_ledger, today):
        """Test that a consistent ledger reports nothing."""
        assert Aggregator(base_ledger, today=today).integrity_notices() == []

    def test_dashboard_totals(self, base_ledger, today):
        """Test the period totals on the overview."""
        ledger = with_records(
            base_ledger,
            expenses=[
                expense("exp-1", "30", date(2024, 3, 1), budget_id="bud-food"),
                expense("exp-2", "999", date(2024, 1, 1)),
            ],
            incomes=[income("inc-1", "100", date(2024, 3, 2), account_id="acc-eur")],
        )
        summary = Aggregator(ledger, today=today).dashboard()
        assert summary.base_currency == Currency.USD
        assert summary.period.start == date(2024, 2, 25)
        assert summary.total_incomes == Decimal("108.00")
        assert summary.total_expenses == Decimal("30.00")
        assert summary.net_balance == Decimal("78.00")
        assert len(summary.daily) == 29
        assert summary.by_category[0].category_id == "cat-food"
        assert summary.budgets[0].spent == Decimal("30.00")
        assert summary.notices == []

    def test_missing_rate_counts_at_parity(self, base_ledger, today):
        """Test the non-strict fallback for an unconfigured currency."""
        settings = FinanceSettings(exchange_rates={Currency.USD: Decimal("1")})
        ledger = with_records(
            base_ledger.model_copy(update={"settings": settings}),
            expenses=[expense("exp-1", "10", date(2024, 3, 1), account_id="acc-eur")],
        )
        aggregator = Aggregator(ledger, today=today)
        assert aggregator.category_spend()[0].amount == Decimal("10.00")
        assert aggregator.converter.missing_currencies == frozenset({"EUR"})

    def test_missing_rate_strict(self, base_ledger, today):
        """Test that strict conversion surfaces the missing rate."""
        settings = FinanceSettings(exchange_rates={Currency.USD: Decimal("1")})
        ledger = with_records(
            base_ledger.model_copy(update={"settings": settings}),
            expenses=[expense("exp-1", "10", date(2024, 3, 1), account_id="acc-eur")],
        )
        aggregator = Aggregator(
            ledger,
            converter=CurrencyConverter(settings, strict=True),
            today=today,
        )
        with pytest.raises(MissingExchangeRateError):
            aggregator.category_spend()

    def test_idempotent(self, base_ledger, today):
        """Test that the same inputs give the same report."""
        ledger = with_records(
            base_ledger,
            expenses=[expense("exp-1", "30", date(2024, 3, 1), budget_id="bud-food")],
        )
        first = Aggregator(ledger, today=today).dashboard()
        second = Aggregator(ledger, today=today).dashboard()
        assert first.model_dump(exclude={"generated_at"}) == second.model_dump(exclude={"generated_at"})
