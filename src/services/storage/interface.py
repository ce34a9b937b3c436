"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the Record Store.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep the accounting engine decoupled from persistence

The interface is intentionally simple - we're not building a full ORM.
Every collection supports the same operations: list, get, insert,
partial update and delete by id. There are no cascading deletes.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.ledger import (
    FinanceSettings,
    Ledger,
    LedgerRecord,
    RecordKind,
)


class RecordStoreInterface(ABC):
    """
    Abstract interface for ledger record storage.

    Any storage implementation (memory, JSON file, Google Sheets, ...)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(self, kind: RecordKind) -> list[LedgerRecord]:
        """
        List every record of one kind, in insertion order.

        Args:
            kind: Collection to read
        """
        pass

    @abstractmethod
    async def get_record(self, kind: RecordKind, record_id: str) -> Optional[LedgerRecord]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_record(self, kind: RecordKind, record: LedgerRecord) -> LedgerRecord:
        """
        Insert a new record.

        Returns:
            The stored record

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        changes: dict[str, Any],
    ) -> LedgerRecord:
        """
        Merge ``changes`` into an existing record.

        Returns:
            The updated record (re-validated)

        Raises:
            NotFoundError: If the record doesn't exist
            pydantic.ValidationError: If the merged record is invalid
        """
        pass

    @abstractmethod
    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False if none matched
        """
        pass

    @abstractmethod
    async def load_settings(self) -> Optional[FinanceSettings]:
        """
        Load the persisted finance settings.

        Returns:
            The settings, or None when none have been saved yet
        """
        pass

    @abstractmethod
    async def save_settings(self, settings: FinanceSettings) -> FinanceSettings:
        """Persist the finance settings (replacing any previous ones)."""
        pass

    async def load_ledger(self, default_settings: Optional[FinanceSettings] = None) -> Ledger:
        """
        Build a Ledger snapshot of everything in the store.

        Args:
            default_settings: Used when no settings have been persisted
        """
        collections = {kind.value: tuple(await self.list_records(kind)) for kind in RecordKind}
        settings = await self.load_settings() or default_settings or FinanceSettings()
        return Ledger(settings=settings, **collections)


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific record, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Record not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate record."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
