"""
Tests for the Finance Tracker

Test strategy:
1. Unit tests for individual components (models, engine, validator)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests (fakes stand in for Google Sheets)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from src.models.ledger import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryKind,
    Currency,
    Debt,
    Expense,
    FinanceSettings,
    Income,
    Ledger,
    RecordKind,
    SavingGoal,
    Transfer,
)
from src.models.reports import (
    Period,
    RecordQuery,
    ValidationIssue,
    ValidationResult,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerRecords:
    """Tests for ledger record Pydantic models."""

    def test_account_creation(self):
        """Test Account model creation with defaults."""
        account = Account(name="Wallet", currency=Currency.USD)
        assert account.type == AccountType.CHECKING
        assert account.initial_amount == Decimal("0")
        assert account.note is None

    def test_ids_are_generated_with_kind_prefix(self):
        """Test that missing ids are generated per record kind."""
        account = Account(name="Wallet", currency="USD")
        category = Category(name="Food")
        goal = SavingGoal(
            name="Trip",
            total_amount=Decimal("1000"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
        )
        assert account.id.startswith("acc-")
        assert category.id.startswith("cat-")
        assert goal.id.startswith("goal-")

    def test_generated_ids_are_unique(self):
        """Test that two new records never share an id."""
        ids = {Category(name="Food").id for _ in range(50)}
        assert len(ids) == 50

    def test_explicit_id_is_kept(self):
        """Test that a supplied id is not replaced."""
        account = Account(id="acc-main", name="Main", currency="EUR")
        assert account.id == "acc-main"

    def test_name_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        category = Category(name="  Groceries  ")
        assert category.name == "Groceries"

    def test_empty_name_rejected(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValueError):
            Category(name="   ")

    def test_account_type_values(self):
        """Test account type string values."""
        assert AccountType("Credit Card") == AccountType.CREDIT_CARD
        assert AccountType.BROKERAGE.value == "Brokerage"

    def test_unsupported_currency_rejected(self):
        """Test that unknown currency codes are rejected."""
        with pytest.raises(ValueError):
            Account(name="Wallet", currency="XYZ")

    def test_expense_rejects_non_positive_amount(self):
        """Test that zero and negative expense amounts are rejected."""
        for amount in (Decimal("0"), Decimal("-10")):
            with pytest.raises(ValueError):
                Expense(
                    name="Coffee",
                    category_id="cat-1",
                    account_id="acc-1",
                    amount=amount,
                    date=date(2024, 3, 1),
                )

    def test_iso_timestamp_truncated_to_date(self):
        """Test that ISO datetime strings become calendar dates."""
        income = Income(
            name="Salary",
            account_id="acc-1",
            amount=Decimal("1000"),
            date="2024-03-10T23:30:00.000Z",
        )
        assert income.date == date(2024, 3, 10)

    def test_datetime_truncated_to_date(self):
        """Test that datetime objects become calendar dates."""
        expense = Expense(
            name="Taxi",
            category_id="cat-1",
            account_id="acc-1",
            amount=Decimal("12.5"),
            date=datetime(2024, 3, 10, 8, 15),
        )
        assert expense.date == date(2024, 3, 10)

    def test_transfer_same_account_rejected(self):
        """Test that a transfer must move money between two accounts."""
        with pytest.raises(ValueError, match="must be different accounts"):
            Transfer(
                name="Move",
                amount=Decimal("10"),
                from_account_id="acc-1",
                to_account_id="acc-1",
                date=date(2024, 3, 1),
            )

    def test_budget_end_before_start_rejected(self):
        """Test budget end date cannot be before start."""
        with pytest.raises(ValueError, match="end date cannot be before start date"):
            Budget(
                name="Food",
                amount=Decimal("100"),
                start_date=date(2024, 3, 1),
                end_date=date(2024, 2, 1),
            )

    def test_budget_is_active_on(self):
        """Test budget date coverage, including open-ended budgets."""
        budget = Budget(
            name="Food",
            amount=Decimal("100"),
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 31),
        )
        open_ended = Budget(name="Rent", amount=Decimal("900"), start_date=date(2024, 1, 1))
        assert budget.is_active_on(date(2024, 3, 31))
        assert not budget.is_active_on(date(2024, 4, 1))
        assert not budget.is_active_on(date(2024, 2, 29))
        assert open_ended.is_active_on(date(2030, 1, 1))

    def test_saving_goal_allows_over_saving(self):
        """Test that current amount may exceed total amount."""
        goal = SavingGoal(
            name="Trip",
            total_amount=Decimal("100"),
            current_amount=Decimal("150"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 6, 1),
        )
        assert goal.current_amount > goal.total_amount

    def test_debt_requires_positive_total(self):
        """Test that a debt total must be greater than zero."""
        with pytest.raises(ValueError):
            Debt(name="Loan", current_balance=Decimal("0"), total_amount=Decimal("0"))

    def test_records_are_frozen(self):
        """Test that records cannot be mutated in place."""
        category = Category(name="Food")
        with pytest.raises(ValidationError):
            category.name = "Other"

    def test_merged_applies_changes_and_keeps_id(self):
        """Test partial update merge semantics."""
        expense = Expense(
            id="exp-1",
            name="Lunch",
            category_id="cat-1",
            account_id="acc-1",
            amount=Decimal("10"),
            date=date(2024, 3, 1),
        )
        updated = expense.merged({"amount": Decimal("12"), "id": "exp-other"})
        assert updated.id == "exp-1"
        assert updated.amount == Decimal("12")
        assert updated.name == "Lunch"
        assert expense.amount == Decimal("10")

    def test_merged_revalidates(self):
        """Test that a merge producing an invalid record fails."""
        transfer = Transfer(
            name="Move",
            amount=Decimal("10"),
            from_account_id="acc-1",
            to_account_id="acc-2",
            date=date(2024, 3, 1),
        )
        with pytest.raises(ValueError):
            transfer.merged({"to_account_id": "acc-1"})


class TestFinanceSettings:
    """Tests for the ledger's currency and period settings."""

    def test_defaults(self):
        """Test the default settings seed."""
        settings = FinanceSettings()
        assert settings.base_currency == Currency.USD
        assert settings.month_start_day == 25
        assert settings.exchange_rates[Currency.EUR] == Decimal("1.08")
        assert settings.exchange_rates[Currency.USD] == Decimal("1")

    def test_month_start_day_bounds(self):
        """Test that month start day must be within 1..31."""
        for day in (0, 32):
            with pytest.raises(ValueError):
                FinanceSettings(month_start_day=day)

    def test_negative_rate_rejected(self):
        """Test that exchange rates cannot be negative."""
        with pytest.raises(ValueError, match="cannot be negative"):
            FinanceSettings(exchange_rates={Currency.EUR: Decimal("-1")})

    def test_zero_rate_allowed(self):
        """Test that a zero rate is accepted."""
        settings = FinanceSettings(exchange_rates={Currency.EUR: Decimal("0")})
        assert settings.exchange_rates[Currency.EUR] == Decimal("0")

    def test_merged(self):
        """Test partial settings updates."""
        settings = FinanceSettings().merged({"month_start_day": 1, "base_currency": "EUR"})
        assert settings.month_start_day == 1
        assert settings.base_currency == Currency.EUR


class TestLedger:
    """Tests for the Ledger snapshot."""

    def test_find_and_index(self, base_ledger):
        """Test record lookup by kind and id."""
        assert base_ledger.find(RecordKind.ACCOUNTS, "acc-usd").name == "Main Checking"
        assert base_ledger.find(RecordKind.ACCOUNTS, "acc-gone") is None
        assert base_ledger.find(RecordKind.ACCOUNTS, None) is None
        assert set(base_ledger.index(RecordKind.CATEGORIES)) == {"cat-food", "cat-salary", "cat-misc"}

    def test_record_kind_models(self):
        """Test that every kind maps to its model."""
        assert RecordKind.EXPENSES.model is Expense
        assert RecordKind.SAVING_GOALS.model is SavingGoal
        assert RecordKind("debts").model is Debt

    def test_category_kind_permissions(self):
        """Test which record types a category kind admits."""
        assert CategoryKind.EXPENSE.allows_expenses
        assert not CategoryKind.EXPENSE.allows_incomes
        assert CategoryKind.INCOME.allows_incomes
        assert CategoryKind.BOTH.allows_expenses and CategoryKind.BOTH.allows_incomes

    def test_empty_ledger_has_default_settings(self):
        """Test that an empty ledger is usable."""
        ledger = Ledger()
        assert ledger.expenses == ()
        assert ledger.settings.month_start_day == 25


class TestPeriodModel:
    """Tests for the Period window model."""

    def test_boundaries_inclusive(self):
        """Test that both boundary days belong to the period."""
        period = Period(start=date(2024, 2, 25), end=date(2024, 3, 24))
        assert period.contains(date(2024, 2, 25))
        assert period.contains(date(2024, 3, 24))
        assert period.contains(datetime(2024, 3, 24, 23, 59))
        assert not period.contains(date(2024, 3, 25))

    def test_timestamps_and_days(self):
        """Test start-of-day/end-of-day timestamps and day iteration."""
        period = Period(start=date(2024, 2, 25), end=date(2024, 3, 24))
        assert period.start_at == datetime(2024, 2, 25, 0, 0)
        assert period.end_at.date() == date(2024, 3, 24)
        assert period.end_at.hour == 23
        days = list(period.days())
        assert len(days) == period.length_days == 29
        assert days[0] == period.start
        assert days[-1] == period.end


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            description="Created expense",
        )
        assert event.event_type == AuditEventType.RECORD_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type="expenses",
            entity_id="exp-1",
            description="Expense updated",
            details={"changed_fields": ["amount"]},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "record_updated"
        assert log_dict["entity_id"] == "exp-1"
        assert log_dict["details"]["changed_fields"] == ["amount"]

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            description="Deleted account",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "record_deleted"  # event_type
        assert row[10] == "True"  # is_user_action

    def test_audit_event_builder_record_created(self):
        """Test AuditEventBuilder.record_created."""
        correlation_id = uuid4()
        event = AuditEventBuilder.record_created(
            kind="expenses",
            record_id="exp-1",
            correlation_id=correlation_id,
            name="Lunch",
        )
        assert event.event_type == AuditEventType.RECORD_CREATED
        assert event.entity_id == "exp-1"
        assert event.correlation_id == correlation_id
        assert event.details["name"] == "Lunch"
        assert event.is_user_action is True

    def test_audit_event_builder_record_deleted_with_dependents(self):
        """Test that deletes leaving dangling references are warnings."""
        with_dependents = AuditEventBuilder.record_deleted(
            kind="accounts",
            record_id="acc-1",
            dependents={"expenses": ["exp-1"]},
            correlation_id=uuid4(),
        )
        clean = AuditEventBuilder.record_deleted(
            kind="accounts",
            record_id="acc-2",
            dependents={},
            correlation_id=uuid4(),
        )
        assert with_dependents.severity == AuditSeverity.WARNING
        assert with_dependents.details["dangling_references"] == {"expenses": ["exp-1"]}
        assert clean.severity == AuditSeverity.INFO


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            record_kind=RecordKind.EXPENSES,
            record_id="exp-1",
            issues=[
                ValidationIssue(
                    field="account_id",
                    issue_type="missing_reference",
                    message="Account acc-1 does not exist",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            record_kind=RecordKind.ACCOUNTS,
            record_id="acc-1",
            issues=[
                ValidationIssue(
                    field="currency",
                    issue_type="missing_exchange_rate",
                    message="No rate",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["No rate"]

    def test_issue_severity_restricted(self):
        """Test that severity must be error, warning or info."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestRecordQuery:
    """Tests for the RecordQuery filter model."""

    def test_defaults_match_everything(self):
        """Test that an empty query has no filters."""
        query = RecordQuery()
        assert query.search is None
        assert query.limit is None

    def test_limit_must_be_positive(self):
        """Test that limit must be at least 1."""
        with pytest.raises(ValueError):
            RecordQuery(limit=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
