"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the concrete backend because:
1. The household can read its ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is small)
- No transactions: the whole working set lives in memory and every unit of
  work rewrites the worksheets it touched before the lock is released
- Worksheets of one unit are written one after another. If a later write
  fails after an earlier one succeeded (goals saved, deposits not), the
  sheet keeps the partial unit and the reload brings it back into memory,
  so a goal total can disagree with its deposits until the unit is retried
- Limited query capabilities (we filter in Python)

Each collection is one worksheet named `<sheet_prefix><collection>` with the
columns [id, payload_json, updated_at]. The payload is the record's pydantic
JSON, so the sheet layout never drifts from the models.
"""

from datetime import datetime, timezone
import json
from typing import Iterable, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from household_ledger.config import GoogleSheetsSettings, get_settings
from household_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from household_ledger.models.competency import Competency
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
)
from household_ledger.services.storage.memory import (
    CLOSED_MONTHS,
    COLLECTION_MODELS,
    InMemoryLedgerStorage,
)

logger = structlog.get_logger(__name__)


RECORD_COLUMNS = ["id", "payload_json", "updated_at"]
CLOSED_MONTH_COLUMNS = ["competency", "closed_at"]

# Column mappings for Audit sheet
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
]


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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
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

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        columns = CLOSED_MONTH_COLUMNS if collection == CLOSED_MONTHS else RECORD_COLUMNS
        return self.get_worksheet(f"{self._settings.sheet_prefix}{collection}", columns)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsLedgerStorage(InMemoryLedgerStorage):
    """
    Ledger storage persisted to one worksheet per collection.

    Call `load()` once before use. Reads are served from memory; every unit
    of work rewrites the worksheets it touched while still holding the lock.
    When a flush fails, the touched collections are reloaded from the sheet
    so memory never runs ahead of what was persisted.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    async def load(self) -> None:
        """Read every collection worksheet into memory."""
        async with self._lock:
            for collection in list(COLLECTION_MODELS) + [CLOSED_MONTHS]:
                self._load_collection(collection)

    def _load_collection(self, collection: str) -> None:
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")

        if collection == CLOSED_MONTHS:
            self._closed_months = {
                Competency.parse(row[0]) for row in all_rows if row and row[0]
            }
            return

        model = COLLECTION_MODELS[collection]
        records = {}
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = model.model_validate_json(row[1])
            except (IndexError, ValueError) as e:
                raise StorageError(f"Corrupt row {row[0]} in {collection}: {e}")
            records[record.id] = record
        self._collections[collection] = records

    async def _commit(self, touched: Iterable[str]) -> None:
        touched = list(dict.fromkeys(touched))
        try:
            for collection in touched:
                self._write_collection(collection)
        except Exception as e:
            logger.error(
                "sheets_flush_failed",
                collections=touched,
                error=str(e),
            )
            for collection in touched:
                self._load_collection(collection)
            raise StorageError(f"Failed to write {', '.join(touched)}: {e}")

    def _collection_rows(self, collection: str) -> list[list[str]]:
        now = datetime.now(timezone.utc).isoformat()
        if collection == CLOSED_MONTHS:
            return [[str(c), now] for c in sorted(self._closed_months)]
        return [
            [str(record_id), record.model_dump_json(), now]
            for record_id, record in self._collections[collection].items()
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_collection(self, collection: str) -> None:
        sheet = self._client.get_collection_sheet(collection)
        header = CLOSED_MONTH_COLUMNS if collection == CLOSED_MONTHS else RECORD_COLUMNS
        values = [header] + self._collection_rows(collection)
        # Overwrite in place, then drop rows left over from a longer collection
        sheet.update(values=values, range_name="A1")
        last_column = chr(ord("A") + len(header) - 1)
        sheet.batch_clear([f"A{len(values) + 1}:{last_column}"])


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

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("audit_row_unreadable", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append_row(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging should not break the main flow
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
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
