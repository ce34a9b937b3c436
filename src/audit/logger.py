"""
Audit Logger

DESIGN DECISION: Every change to the ledger is logged.
This provides:
1. Complete traceability of who changed which record and when
2. Debugging capability
3. A visible trail of dangling references left by deletes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.models.reports import DataIntegrityNotice, ValidationResult
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib logging (and so structlog) to stderr at ``log_level``."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_created(
        self,
        kind: str,
        record_id: str,
        correlation_id: UUID,
        name: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.record_created(
            kind=kind,
            record_id=record_id,
            correlation_id=correlation_id,
            name=name,
        )
        await self.log(event)

    async def log_record_updated(
        self,
        kind: str,
        record_id: str,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.record_updated(
            kind=kind,
            record_id=record_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_deleted(
        self,
        kind: str,
        record_id: str,
        dependents: dict[str, list[str]],
        correlation_id: UUID,
    ) -> None:
        """Log a delete, including records left pointing at the deleted id."""
        event = AuditEventBuilder.record_deleted(
            kind=kind,
            record_id=record_id,
            dependents=dependents,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_record_rejected(
        self,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        """Log a record that failed validation."""
        event = AuditEventBuilder.record_rejected(
            kind=result.record_kind.value,
            record_id=result.record_id,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settings_updated(
        self,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.settings_updated(
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_report_generated(
        self,
        report: str,
        period_start: str,
        period_end: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.report_generated(
            report=report,
            period_start=period_start,
            period_end=period_end,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_integrity_notices(
        self,
        notices: list[DataIntegrityNotice],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log one event per dangling reference."""
        for notice in notices:
            event = AuditEventBuilder.data_integrity_notice(
                kind=notice.record_kind.value,
                record_id=notice.record_id,
                field=notice.field,
                missing_id=notice.missing_id,
                correlation_id=correlation_id,
            )
            await self.log(event)

    async def log_missing_exchange_rates(
        self,
        currencies: frozenset[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        for currency in sorted(currencies):
            event = AuditEventBuilder.missing_exchange_rate(
                currency=currency,
                correlation_id=correlation_id,
            )
            await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a failed Record Store call."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
