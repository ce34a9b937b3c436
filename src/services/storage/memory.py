"""
In-Memory Storage Implementation

Holds every collection in process memory. Used by tests and as the
default backend when nothing else is configured. State is lost when the
process exits.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.ledger import FinanceSettings, Ledger, LedgerRecord, RecordKind
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dict-backed record store.

    Writes are serialized with an asyncio.Lock; reads see whole records
    only, since records are immutable and replaced on update.
    """

    def __init__(self, ledger: Optional[Ledger] = None):
        self._collections: dict[RecordKind, dict[str, LedgerRecord]] = {
            kind: {} for kind in RecordKind
        }
        self._settings: Optional[FinanceSettings] = None
        self._lock = asyncio.Lock()

        if ledger is not None:
            for kind in RecordKind:
                for record in ledger.records(kind):
                    self._collections[kind][record.id] = record
            self._settings = ledger.settings

    async def _after_write(self) -> None:
        """Hook run inside the write lock after every change."""
        pass

    @asynccontextmanager
    async def _write(self, kind: Optional[RecordKind] = None) -> AsyncIterator[None]:
        """
        Serialize one change and run the write hook after it.

        If the hook fails the change is undone, so memory never holds
        state the backing file rejected.
        """
        async with self._lock:
            records = dict(self._collections[kind]) if kind is not None else None
            settings = self._settings
            yield
            try:
                await self._after_write()
            except StorageError:
                if kind is not None:
                    self._collections[kind] = records
                self._settings = settings
                raise

    async def list_records(self, kind: RecordKind) -> list[LedgerRecord]:
        return list(self._collections[kind].values())

    async def get_record(self, kind: RecordKind, record_id: str) -> Optional[LedgerRecord]:
        return self._collections[kind].get(record_id)

    async def insert_record(self, kind: RecordKind, record: LedgerRecord) -> LedgerRecord:
        async with self._write(kind):
            collection = self._collections[kind]
            if record.id in collection:
                raise DuplicateError(f"{kind.value} record already exists: {record.id}")
            collection[record.id] = record
        return record

    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        changes: dict[str, Any],
    ) -> LedgerRecord:
        async with self._write(kind):
            collection = self._collections[kind]
            current = collection.get(record_id)
            if current is None:
                raise NotFoundError(f"{kind.value} record not found: {record_id}")
            updated = current.merged(changes)
            collection[record_id] = updated
        return updated

    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        if record_id not in self._collections[kind]:
            return False
        async with self._write(kind):
            self._collections[kind].pop(record_id, None)
        return True

    async def load_settings(self) -> Optional[FinanceSettings]:
        return self._settings

    async def save_settings(self, settings: FinanceSettings) -> FinanceSettings:
        async with self._write():
            self._settings = settings
        return settings


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
