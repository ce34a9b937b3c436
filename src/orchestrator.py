"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger changes (record → validate → store → audit)
2. Reports (store → ledger snapshot → engine → report)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No record persists without passing referential validation
- The engine only ever sees an immutable Ledger snapshot
- Every change is audited

This is the "glue" that keeps the Record Store, the validator and the
accounting engine unaware of each other.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from src.audit import AuditLogger, configure_logging, create_correlation_id
from src.config import Settings, get_settings
from src.engine import Aggregator, CurrencyConverter, period_for
from src.models.ledger import FinanceSettings, Ledger, LedgerRecord, RecordKind
from src.models.reports import (
    AccountBalance,
    BudgetConsumption,
    CategorySpend,
    DailyPoint,
    DashboardSummary,
    DataIntegrityNotice,
    DebtProgress,
    Period,
    QueryResult,
    RecordQuery,
    SavingGoalProgress,
    TransferConversion,
)
from src.queries import QueryExecutor
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    JsonFileRecordStore,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from src.validation import RecordValidationError, RecordValidator


logger = structlog.get_logger(__name__)


class LedgerFlow:
    """
    Orchestrates every change to the ledger.

    Flow (add/update):
    1. Build or merge the record → pydantic schema validation
    2. Load a ledger snapshot → referential validation
    3. Reject (audit + RecordValidationError) or write to the store
    4. Audit the change

    Deletes are never blocked. Records left pointing at the deleted id
    are recorded in the audit trail and show up as integrity notices.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_settings: Optional[FinanceSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._default_settings = default_settings or FinanceSettings()

    async def _ledger(self) -> Ledger:
        return await self._store.load_ledger(self._default_settings)

    async def _reject(
        self,
        validator: RecordValidator,
        kind: RecordKind,
        record: LedgerRecord,
        correlation_id: UUID,
    ) -> None:
        """Raise RecordValidationError if the record has error-level issues."""
        result = validator.validate(kind, record)
        for warning in result.warnings:
            logger.warning("record_validation_warning", kind=kind.value, record_id=record.id, message=warning)
        if result.has_errors:
            await self._audit_logger.log_record_rejected(result, correlation_id)
            raise RecordValidationError(result)

    async def add(
        self,
        kind: RecordKind,
        data: Union[dict[str, Any], LedgerRecord],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecord:
        """
        Validate and insert a new record.

        Args:
            kind: Collection to insert into
            data: Field values (an id is generated if absent) or a record

        Returns:
            The stored record

        Raises:
            pydantic.ValidationError: Malformed field values
            RecordValidationError: Missing references or kind mismatch
            StorageError: The store rejected the write
        """
        correlation_id = correlation_id or create_correlation_id()
        record = data if isinstance(data, LedgerRecord) else kind.model.model_validate(data)

        ledger = await self._ledger()
        await self._reject(RecordValidator(ledger), kind, record, correlation_id)

        try:
            stored = await self._store.insert_record(kind, record)
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation=f"insert {kind.value}",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_record_created(
            kind=kind.value,
            record_id=stored.id,
            correlation_id=correlation_id,
            name=stored.name,
        )
        return stored

    async def update(
        self,
        kind: RecordKind,
        record_id: str,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerRecord:
        """
        Merge ``changes`` into an existing record.

        The id can never change; an ``id`` key in ``changes`` is ignored.

        Raises:
            NotFoundError: No such record
            pydantic.ValidationError: The merged record is malformed
            RecordValidationError: The merged record has broken references
        """
        correlation_id = correlation_id or create_correlation_id()
        changes = {k: v for k, v in changes.items() if k != "id"}

        ledger = await self._ledger()
        current = ledger.find(kind, record_id)
        if current is None:
            raise NotFoundError(f"{kind.value} record not found: {record_id}")

        candidate = current.merged(changes)
        await self._reject(RecordValidator(ledger), kind, candidate, correlation_id)

        try:
            updated = await self._store.update_record(kind, record_id, changes)
        except NotFoundError:
            raise
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation=f"update {kind.value}",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_record_updated(
            kind=kind.value,
            record_id=record_id,
            changed_fields=sorted(changes),
            correlation_id=correlation_id,
        )
        return updated

    async def delete(
        self,
        kind: RecordKind,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, list[str]]:
        """
        Delete a record without cascading.

        Returns:
            Records still referencing the deleted id, by kind

        Raises:
            NotFoundError: No such record
        """
        correlation_id = correlation_id or create_correlation_id()

        ledger = await self._ledger()
        dependents = RecordValidator(ledger).dependents_of(kind, record_id)

        try:
            deleted = await self._store.delete_record(kind, record_id)
        except StorageError as e:
            await self._audit_logger.log_storage_error(
                operation=f"delete {kind.value}",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        if not deleted:
            raise NotFoundError(f"{kind.value} record not found: {record_id}")

        await self._audit_logger.log_record_deleted(
            kind=kind.value,
            record_id=record_id,
            dependents=dependents,
            correlation_id=correlation_id,
        )
        return dependents

    async def get_settings(self) -> FinanceSettings:
        """Persisted settings, or the configured defaults if none are stored."""
        return await self._store.load_settings() or self._default_settings

    async def update_settings(
        self,
        changes: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> FinanceSettings:
        """
        Merge ``changes`` into the finance settings and persist them.

        Raises:
            pydantic.ValidationError: e.g. month_start_day outside 1..31
        """
        correlation_id = correlation_id or create_correlation_id()

        current = await self.get_settings()
        updated = current.merged(changes)

        ledger = await self._ledger()
        for issue in RecordValidator(ledger).validate_settings(updated):
            logger.warning("settings_validation_warning", issue_type=issue.issue_type, message=issue.message)

        await self._store.save_settings(updated)
        await self._audit_logger.log_settings_updated(
            changed_fields=sorted(changes),
            correlation_id=correlation_id,
        )
        return updated


class ReportFlow:
    """
    Orchestrates report generation.

    Every call loads a fresh Ledger snapshot and runs the pure accounting
    engine over it. Nothing is cached, so reports always reflect the
    latest writes.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_settings: Optional[FinanceSettings] = None,
        strict_exchange_rates: bool = False,
        budget_warning_percent: Decimal = Decimal("80"),
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._default_settings = default_settings or FinanceSettings()
        self._strict = strict_exchange_rates
        self._warning_percent = budget_warning_percent
        self._query_executor = QueryExecutor()

    async def ledger(self) -> Ledger:
        return await self._store.load_ledger(self._default_settings)

    async def aggregator(
        self,
        today: Optional[date] = None,
        period: Optional[Period] = None,
    ) -> Aggregator:
        """Engine bound to a fresh snapshot."""
        ledger = await self.ledger()
        return Aggregator(
            ledger,
            period=period,
            converter=CurrencyConverter(ledger.settings, strict=self._strict),
            today=today,
            budget_warning_percent=self._warning_percent,
        )

    async def current_period(self, today: Optional[date] = None) -> Period:
        settings = await self._store.load_settings() or self._default_settings
        return period_for(today or date.today(), settings.month_start_day)

    async def dashboard(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DashboardSummary:
        """
        Overview figures for the current period.

        Dangling references and currencies without a configured rate are
        written to the audit trail alongside the report.
        """
        correlation_id = correlation_id or create_correlation_id()
        aggregator = await self.aggregator(today=today)
        summary = aggregator.dashboard()

        await self._audit_logger.log_report_generated(
            report="dashboard",
            period_start=summary.period.start.isoformat(),
            period_end=summary.period.end.isoformat(),
            correlation_id=correlation_id,
        )
        await self._audit_logger.log_integrity_notices(summary.notices, correlation_id)
        await self._audit_logger.log_missing_exchange_rates(
            aggregator.converter.missing_currencies,
            correlation_id,
        )
        return summary

    async def account_balances(self, today: Optional[date] = None) -> list[AccountBalance]:
        return (await self.aggregator(today=today)).account_balances()

    async def account_balance(self, account_id: str) -> Optional[AccountBalance]:
        return (await self.aggregator()).account_balance(account_id)

    async def category_spend(self, today: Optional[date] = None) -> list[CategorySpend]:
        return (await self.aggregator(today=today)).category_spend()

    async def budgets(self, today: Optional[date] = None) -> list[BudgetConsumption]:
        return (await self.aggregator(today=today)).budget_consumptions()

    async def saving_goals(self, today: Optional[date] = None) -> list[SavingGoalProgress]:
        return (await self.aggregator(today=today)).saving_goals_progress()

    async def debts(self) -> list[DebtProgress]:
        return (await self.aggregator()).debts_progress()

    async def daily_series(self, today: Optional[date] = None) -> list[DailyPoint]:
        return (await self.aggregator(today=today)).daily_series()

    async def transfers(self) -> list[TransferConversion]:
        return (await self.aggregator()).transfer_conversions()

    async def integrity_notices(self) -> list[DataIntegrityNotice]:
        return (await self.aggregator()).integrity_notices()

    async def list_records(self, kind: RecordKind, query: Optional[RecordQuery] = None) -> QueryResult:
        """
        Filtered expense, income or transfer list.

        Raises:
            ValueError: For kinds that have no list screen
        """
        query = query or RecordQuery()
        ledger = await self.ledger()
        if kind is RecordKind.EXPENSES:
            return self._query_executor.expenses(ledger, query)
        if kind is RecordKind.INCOMES:
            return self._query_executor.incomes(ledger, query)
        if kind is RecordKind.TRANSFERS:
            return self._query_executor.transfers(ledger, query)
        raise ValueError(f"No record query for {kind.value}")


def create_record_store(settings: Optional[Settings] = None) -> RecordStoreInterface:
    """Build the Record Store selected by STORAGE_BACKEND."""
    settings = settings or get_settings()
    storage = settings.storage

    if storage.backend == "json":
        return JsonFileRecordStore(storage.json_path)
    if storage.backend == "google_sheets":
        return GoogleSheetsRecordStore(GoogleSheetsClient(settings.google_sheets))
    return InMemoryRecordStore()


def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[LedgerFlow, ReportFlow, RecordStoreInterface]:
    """
    Factory function to create all application components.

    The backend comes from STORAGE_BACKEND. Audit events go to Google
    Sheets alongside the records for that backend, and stay in memory
    otherwise.

    Returns:
        (ledger_flow, report_flow, record_store)
    """
    settings = settings or get_settings()
    app = settings.app
    ledger_defaults = settings.ledger

    configure_logging(app.log_level)

    if settings.storage.backend == "google_sheets":
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        store: RecordStoreInterface = GoogleSheetsRecordStore(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        store = create_record_store(settings)
        audit_logger = AuditLogger(InMemoryAuditStorage())

    default_settings = ledger_defaults.to_finance_settings()

    ledger_flow = LedgerFlow(
        store,
        audit_logger=audit_logger,
        default_settings=default_settings,
    )
    report_flow = ReportFlow(
        store,
        audit_logger=audit_logger,
        default_settings=default_settings,
        strict_exchange_rates=ledger_defaults.strict_exchange_rates,
        budget_warning_percent=app.budget_warning_percent,
    )

    logger.info(
        "app_components_created",
        backend=settings.storage.backend,
        environment=app.app_environment,
    )
    return ledger_flow, report_flow, store
