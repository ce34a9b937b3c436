"""
Record Validation at the Store Boundary

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, value ranges
- Done by the pydantic models themselves at construction time
- A record that reaches this module is already structurally valid

STAGE 2 - REFERENTIAL VALIDATION (this module):
- Referenced accounts, categories and budgets must exist
- A category's kind must allow the record type using it
- Currencies used by accounts should have an exchange rate
- A transfer should not overdraw its source account (warning only)
- This needs the ledger the record is about to join

WHY TWO STAGES:
1. Separation of concerns (structural vs relational)
2. Better error messages (know exactly what kind of issue)
3. Stage 2 needs access to the other records

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the flow decides whether to write.

Deletes are never blocked. Records still pointing at a deleted id are
reported through dependents_of() and surface later as integrity notices.
"""

from typing import Optional

from src.engine.aggregator import Aggregator
from src.models.ledger import (
    Account,
    Budget,
    Expense,
    FinanceSettings,
    Income,
    Ledger,
    LedgerRecord,
    RecordKind,
    Transfer,
)
from src.models.reports import ValidationIssue, ValidationResult


class RecordValidationError(Exception):
    """A record failed referential validation and was not written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid {result.record_kind.value} record: {messages}")


class RecordValidator:
    """
    Validates records against the ledger they will be written into.

    Construct one per write with a fresh ledger snapshot.
    """

    def __init__(self, ledger: Ledger):
        self._ledger = ledger
        self._accounts = ledger.index(RecordKind.ACCOUNTS)
        self._categories = ledger.index(RecordKind.CATEGORIES)
        self._budgets = ledger.index(RecordKind.BUDGETS)

    # =========================================================================
    # REFERENCE CHECKS
    # =========================================================================

    def _require_account(self, field: str, account_id: Optional[str]) -> list[ValidationIssue]:
        if account_id is None or account_id in self._accounts:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="missing_reference",
            message=f"Account {account_id} does not exist",
            severity="error",
            suggested_fix="Pick an existing account",
        )]

    def _require_category(
        self,
        field: str,
        category_id: Optional[str],
        for_expense: bool,
    ) -> list[ValidationIssue]:
        if category_id is None:
            return []

        category = self._categories.get(category_id)
        if category is None:
            return [ValidationIssue(
                field=field,
                issue_type="missing_reference",
                message=f"Category {category_id} does not exist",
                severity="error",
                suggested_fix="Pick an existing category",
            )]

        allowed = category.kind.allows_expenses if for_expense else category.kind.allows_incomes
        if not allowed:
            record_type = "expenses" if for_expense else "incomes"
            return [ValidationIssue(
                field=field,
                issue_type="kind_mismatch",
                message=f"Category '{category.name}' is a {category.kind.value} category and cannot be used for {record_type}",
                severity="error",
                suggested_fix="Pick a category of the matching kind, or change it to 'both'",
            )]
        return []

    def _require_budget(self, budget_id: Optional[str]) -> list[ValidationIssue]:
        if budget_id is None or budget_id in self._budgets:
            return []
        return [ValidationIssue(
            field="budget_id",
            issue_type="missing_reference",
            message=f"Budget {budget_id} does not exist",
            severity="error",
            suggested_fix="Pick an existing budget or leave it empty",
        )]

    def _check_rate(self, field: str, currency: str) -> list[ValidationIssue]:
        rates = {c.value for c in self._ledger.settings.exchange_rates}
        if currency in rates:
            return []
        return [ValidationIssue(
            field=field,
            issue_type="missing_exchange_rate",
            message=f"No exchange rate configured for {currency}; amounts will be counted at parity",
            severity="warning",
            suggested_fix=f"Add a {currency} rate in the settings",
        )]

    def _check_source_balance(self, transfer: Transfer) -> list[ValidationIssue]:
        """Warn when a transfer would leave its source account negative."""
        source = self._accounts.get(transfer.from_account_id)
        if source is None:
            return []

        # An edited transfer must not count against itself
        others = tuple(t for t in self._ledger.transfers if t.id != transfer.id)
        ledger = self._ledger.model_copy(update={"transfers": others})
        balance = Aggregator(ledger).account_balance(source.id).native_balance
        if transfer.amount <= balance:
            return []
        return [ValidationIssue(
            field="amount",
            issue_type="insufficient_balance",
            message=(
                f"This transfer will leave '{source.name}' with a negative balance "
                f"({balance} {source.currency.value} available)"
            ),
            severity="warning",
            suggested_fix="Lower the amount or move money into the account first",
        )]

    # =========================================================================
    # PER-KIND RULES
    # =========================================================================

    def _validate_expense(self, expense: Expense) -> list[ValidationIssue]:
        issues = self._require_account("account_id", expense.account_id)
        issues += self._require_category("category_id", expense.category_id, for_expense=True)
        issues += self._require_budget(expense.budget_id)
        return issues

    def _validate_income(self, income: Income) -> list[ValidationIssue]:
        issues = self._require_account("account_id", income.account_id)
        issues += self._require_category("category_id", income.category_id, for_expense=False)
        return issues

    def _validate_transfer(self, transfer: Transfer) -> list[ValidationIssue]:
        issues = self._require_account("from_account_id", transfer.from_account_id)
        issues += self._require_account("to_account_id", transfer.to_account_id)
        issues += self._check_source_balance(transfer)
        return issues

    def _validate_budget(self, budget: Budget) -> list[ValidationIssue]:
        issues = self._require_account("account_id", budget.account_id)
        if budget.category_id is not None and budget.category_id not in self._categories:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing_reference",
                message=f"Category {budget.category_id} does not exist",
                severity="error",
                suggested_fix="Pick an existing category or leave it empty",
            ))
        return issues

    def _validate_account(self, account: Account) -> list[ValidationIssue]:
        return self._check_rate("currency", account.currency.value)

    def validate(self, kind: RecordKind, record: LedgerRecord) -> ValidationResult:
        """
        Run referential validation for a record about to be written.

        Args:
            kind: Collection the record belongs to
            record: The (already schema-valid) record

        Returns:
            ValidationResult with all issues found
        """
        if not isinstance(record, kind.model):
            raise TypeError(f"Expected {kind.model.__name__}, got {type(record).__name__}")

        if kind is RecordKind.EXPENSES:
            issues = self._validate_expense(record)
        elif kind is RecordKind.INCOMES:
            issues = self._validate_income(record)
        elif kind is RecordKind.TRANSFERS:
            issues = self._validate_transfer(record)
        elif kind is RecordKind.BUDGETS:
            issues = self._validate_budget(record)
        elif kind is RecordKind.ACCOUNTS:
            issues = self._validate_account(record)
        else:
            # Categories, goals and debts reference nothing
            issues = []

        return ValidationResult(record_kind=kind, record_id=record.id, issues=issues)

    def validate_settings(self, settings: FinanceSettings) -> list[ValidationIssue]:
        """
        Warnings for settings that will distort conversions.

        Settings are never rejected here; invalid values already fail
        at construction.
        """
        issues = []
        base_rate = settings.exchange_rates.get(settings.base_currency)
        if base_rate is not None and base_rate != 1:
            issues.append(ValidationIssue(
                field="exchange_rates",
                issue_type="base_rate_not_one",
                message=f"The base currency {settings.base_currency.value} has rate {base_rate}, not 1",
                severity="warning",
                suggested_fix="Set the base currency rate to 1",
            ))

        configured = set(settings.exchange_rates)
        for account in self._ledger.accounts:
            if account.currency not in configured:
                issues.append(ValidationIssue(
                    field="exchange_rates",
                    issue_type="missing_exchange_rate",
                    message=f"Account '{account.name}' uses {account.currency.value}, which has no rate",
                    severity="warning",
                    suggested_fix=f"Add a {account.currency.value} rate",
                ))
        return issues

    def dependents_of(self, kind: RecordKind, record_id: str) -> dict[str, list[str]]:
        """
        Records that reference ``record_id`` and would dangle after a delete.

        Returns:
            Map of record kind value -> referencing record ids (kinds
            with no dependents are omitted)
        """
        refs: dict[RecordKind, list[tuple[RecordKind, str]]] = {
            RecordKind.ACCOUNTS: [
                (RecordKind.EXPENSES, "account_id"),
                (RecordKind.INCOMES, "account_id"),
                (RecordKind.TRANSFERS, "from_account_id"),
                (RecordKind.TRANSFERS, "to_account_id"),
                (RecordKind.BUDGETS, "account_id"),
            ],
            RecordKind.CATEGORIES: [
                (RecordKind.EXPENSES, "category_id"),
                (RecordKind.INCOMES, "category_id"),
                (RecordKind.BUDGETS, "category_id"),
            ],
            RecordKind.BUDGETS: [
                (RecordKind.EXPENSES, "budget_id"),
            ],
        }

        dependents: dict[str, list[str]] = {}
        for ref_kind, field in refs.get(kind, []):
            for record in self._ledger.records(ref_kind):
                if getattr(record, field) == record_id:
                    ids = dependents.setdefault(ref_kind.value, [])
                    if record.id not in ids:
                        ids.append(record.id)
        return dependents

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ This record can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
