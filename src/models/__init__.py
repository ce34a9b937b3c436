"""
Data Models Package

This package contains all Pydantic models used by the finance tracker.
All data flowing between the Record Store and the accounting engine must
conform to these schemas.
"""

from src.models.ledger import (
    DEFAULT_EXCHANGE_RATES,
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
    LedgerRecord,
    RecordKind,
    Recurrence,
    SavingGoal,
    Transfer,
    new_record_id,
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
    QueryResult,
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

__all__ = [
    # Ledger records
    "DEFAULT_EXCHANGE_RATES",
    "Account",
    "AccountType",
    "Budget",
    "Category",
    "CategoryKind",
    "Currency",
    "Debt",
    "Expense",
    "FinanceSettings",
    "Income",
    "Ledger",
    "LedgerRecord",
    "RecordKind",
    "Recurrence",
    "SavingGoal",
    "Transfer",
    "new_record_id",
    # Reports
    "AccountBalance",
    "BudgetConsumption",
    "BudgetStatus",
    "CategorySpend",
    "DailyPoint",
    "DashboardSummary",
    "DataIntegrityNotice",
    "DebtProgress",
    "Period",
    "SavingGoalProgress",
    "TransferConversion",
    "QueryResult",
    "RecordQuery",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
