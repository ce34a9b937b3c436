"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is kept as a hosted storage backend because:
1. Non-technical users can view and fix their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (one row per record keeps writes independent)
- Limited query capabilities (we filter in Python)

Layout: one worksheet per record kind, named after the kind
("accounts", "expenses", ...). The header row is the model's field list,
so adding a field to a model adds a column. Settings live in a single
row of their own worksheet; exchange rates are stored as a JSON cell.
"""

import json
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
)

from src.config import GoogleSheetsSettings, get_settings
from src.models.audit import AuditEvent
from src.models.ledger import FinanceSettings, LedgerRecord, RecordKind
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageConnectionError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for the Settings sheet
SETTINGS_COLUMNS = [
    "base_currency",
    "month_start_day",
    "exchange_rates_json",
]

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def record_columns(kind: RecordKind) -> list[str]:
    """Header row for a record worksheet."""
    return list(kind.model.model_fields)


def record_to_row(kind: RecordKind, record: LedgerRecord) -> list[str]:
    """Convert a record to a spreadsheet row (all cells as text)."""
    data = record.model_dump(mode="json")
    return ["" if data.get(col) is None else str(data[col]) for col in record_columns(kind)]


def row_to_record(kind: RecordKind, header: list[str], row: list[str]) -> LedgerRecord:
    """
    Convert a spreadsheet row back to a record.

    Empty cells are dropped so optional fields fall back to their
    defaults; pydantic parses the remaining text cells.
    """
    data = {col: value for col, value in zip(header, row) if value != ""}
    return kind.model.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet whose first row is ``columns``."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_record_sheet(self, kind: RecordKind) -> gspread.Worksheet:
        return self.get_worksheet(kind.value, record_columns(kind))

    def get_settings_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=10)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Every record is one row; the id is always the first column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_rows(self, kind: RecordKind) -> tuple[list[str], list[list[str]]]:
        values = self._client.get_record_sheet(kind).get_all_values()
        if not values:
            return record_columns(kind), []
        return values[0], values[1:]

    @staticmethod
    def _find_row(rows: list[list[str]], record_id: str) -> Optional[int]:
        """Sheet row number (1-based, header is row 1) of a record id."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == record_id:
                return idx
        return None

    async def list_records(self, kind: RecordKind) -> list[LedgerRecord]:
        """List all records of a kind, skipping rows that fail validation."""
        try:
            header, rows = self._read_rows(kind)
        except StorageConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list {kind.value}: {e}")

        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(row_to_record(kind, header, row))
            except ValidationError as e:
                logger.warning(
                    "malformed_sheet_row",
                    kind=kind.value,
                    record_id=row[0],
                    error_count=e.error_count(),
                )
        return records

    async def get_record(self, kind: RecordKind, record_id: str) -> Optional[LedgerRecord]:
        try:
            header, rows = self._read_rows(kind)
        except StorageConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {kind.value} record: {e}")

        for row in rows:
            if row and row[0] == record_id:
                return self._parse_row(kind, header, row)
        return None

    @staticmethod
    def _parse_row(kind: RecordKind, header: list[str], row: list[str]) -> LedgerRecord:
        """Parse a row that was looked up by id; malformed rows are a StorageError."""
        try:
            return row_to_record(kind, header, row)
        except ValidationError as e:
            raise StorageError(
                f"Stored {kind.value} record {row[0]} is malformed ({e.error_count()} errors)"
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_record(self, sheet: gspread.Worksheet, kind: RecordKind, record: LedgerRecord) -> None:
        # A retry after an append that landed but errored must not add a second row
        if record.id in sheet.col_values(1)[1:]:
            return
        sheet.append_row(record_to_row(kind, record), value_input_option="RAW")

    async def insert_record(self, kind: RecordKind, record: LedgerRecord) -> LedgerRecord:
        """Append a record row."""
        try:
            sheet = self._client.get_record_sheet(kind)
            existing = sheet.col_values(1)[1:]
            if record.id in existing:
                raise DuplicateError(f"{kind.value} record already exists: {record.id}")
            self._append_record(sheet, kind, record)
            return record
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {kind.value} record: {e}")

    async def update_record(
        self,
        kind: RecordKind,
        record_id: str,
        changes: dict[str, Any],
    ) -> LedgerRecord:
        """Merge changes into a record and rewrite its row."""
        try:
            sheet = self._client.get_record_sheet(kind)
            values = sheet.get_all_values()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {kind.value} record: {e}")

        header, rows = (values[0], values[1:]) if values else (record_columns(kind), [])
        idx = self._find_row(rows, record_id)
        if idx is None:
            raise NotFoundError(f"{kind.value} record not found: {record_id}")

        current = self._parse_row(kind, header, rows[idx - 2])
        updated = current.merged(changes)

        try:
            sheet.update(
                range_name=f"A{idx}",
                values=[record_to_row(kind, updated)],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to update {kind.value} record: {e}")
        return updated

    async def delete_record(self, kind: RecordKind, record_id: str) -> bool:
        """Delete a record row by ID."""
        try:
            sheet = self._client.get_record_sheet(kind)
            rows = sheet.get_all_values()[1:]
            idx = self._find_row(rows, record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {kind.value} record: {e}")

    async def load_settings(self) -> Optional[FinanceSettings]:
        try:
            rows = self._client.get_settings_sheet().get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load settings: {e}")

        if not rows or not rows[0] or not rows[0][0]:
            return None

        row = rows[0]
        data: dict[str, Any] = {"base_currency": row[0]}
        if len(row) > 1 and row[1]:
            data["month_start_day"] = row[1]
        if len(row) > 2 and row[2]:
            data["exchange_rates"] = json.loads(row[2])
        return FinanceSettings.model_validate(data)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_settings(self, settings: FinanceSettings) -> FinanceSettings:
        """Overwrite the single settings row."""
        data = settings.model_dump(mode="json")
        row = [
            data["base_currency"],
            str(data["month_start_day"]),
            json.dumps(data["exchange_rates"]),
        ]
        try:
            sheet = self._client.get_settings_sheet()
            sheet.update(range_name="A2", values=[row], value_input_option="RAW")
            return settings
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save settings: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent.model_validate({
            "event_id": safe_get(0),
            "timestamp": safe_get(1),
            "event_type": safe_get(2),
            "severity": safe_get(3),
            "entity_type": safe_get(4) or None,
            "entity_id": safe_get(5) or None,
            "correlation_id": safe_get(6) or None,
            "description": safe_get(7),
            "details": json.loads(safe_get(8)) if safe_get(8) else {},
            "error_message": safe_get(9) or None,
            "is_user_action": safe_get(10).lower() == "true",
        })

    def _read_events(self) -> list[AuditEvent]:
        all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValidationError, ValueError) as e:
                logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by record."""
        try:
            events = [
                e for e in self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
