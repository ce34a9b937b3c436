"""
Storage Services Package

Provides the abstract Record Store interface and its backends:
in-memory (tests, scratch sessions), a local JSON file and Google Sheets.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageConnectionError,
    StorageError,
)
from src.services.storage.memory import InMemoryAuditStorage, InMemoryRecordStore
from src.services.storage.json_file import JsonFileRecordStore, LedgerDocument
from src.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStoreInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    # JSON file implementation
    "JsonFileRecordStore",
    "LedgerDocument",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
