"""
Audit Models for the Finance Tracker

Every write to the ledger and every integrity problem the engine notices
is recorded as an audit event. This provides:
1. Traceability of who changed which record and when
2. Debugging information when a figure looks wrong
3. A place where silently-defaulted exchange rates become visible

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Record lifecycle
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    RECORD_REJECTED = "record_rejected"
    SETTINGS_UPDATED = "settings_updated"

    # Reporting
    REPORT_GENERATED = "report_generated"
    DATA_INTEGRITY_NOTICE = "data_integrity_notice"
    MISSING_EXCHANGE_RATE = "missing_exchange_rate"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Record kind (e.g., 'expenses', 'accounts')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one user action)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("expenses", "exp-1a2b", correlation_id)
    """

    @staticmethod
    def record_created(
        kind: str,
        record_id: str,
        correlation_id: UUID,
        name: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Created {kind} record {record_id}",
            details={"name": name} if name else {},
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        kind: str,
        record_id: str,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Updated {kind} record {record_id}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        kind: str,
        record_id: str,
        dependents: dict[str, list[str]],
        correlation_id: UUID,
    ) -> AuditEvent:
        # Dangling references are allowed, but worth a warning in the trail
        severity = AuditSeverity.WARNING if any(dependents.values()) else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            severity=severity,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Deleted {kind} record {record_id}",
            details={"dangling_references": dependents},
            is_user_action=True,
        )

    @staticmethod
    def record_rejected(
        kind: str,
        record_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Rejected {kind} record {record_id} with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def settings_updated(
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            entity_type="settings",
            correlation_id=correlation_id,
            description="Finance settings updated",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def report_generated(
        report: str,
        period_start: str,
        period_end: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            severity=AuditSeverity.DEBUG,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Generated {report} for {period_start}..{period_end}",
            details={
                "report": report,
                "period_start": period_start,
                "period_end": period_end,
            },
        )

    @staticmethod
    def data_integrity_notice(
        kind: str,
        record_id: str,
        field: str,
        missing_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_INTEGRITY_NOTICE,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{kind} record {record_id} references missing {field} {missing_id}",
            details={"field": field, "missing_id": missing_id},
        )

    @staticmethod
    def missing_exchange_rate(
        currency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MISSING_EXCHANGE_RATE,
            severity=AuditSeverity.WARNING,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"No exchange rate configured for {currency}; assumed parity",
            details={"currency": currency},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
