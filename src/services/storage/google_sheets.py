"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the ledger backend because:
1. Users can view and chart their transactions directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: reconcile-then-append is read-then-write
- Limited query capabilities (we filter in Python)

gspread is synchronous, so every call runs in a worker thread.
That keeps the event loop free and lets callers bound calls with timeouts.
"""

import asyncio
import json
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import GoogleSheetsSettings, get_settings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.transaction import TransactionRecord
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "date",
    "amount",
    "description",
    "category",
    "tags",
    "source",
    "kind",
    "account",
    "status",
    "original_id",
    "created_at",
]

CATEGORY_COLUMNS = ["name", "keywords", "budget", "color"]
SETTINGS_COLUMNS = ["name", "value"]

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
    "is_user_action",
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

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses inline service account JSON when configured,
        otherwise the credentials file.
        """
        if self._client is None:
            try:
                info = self._settings.credentials_info()
                if info:
                    credentials = Credentials.from_service_account_info(info, scopes=SCOPES)
                else:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path,
                        scopes=SCOPES,
                    )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except json.JSONDecodeError as e:
                raise ConnectionError(f"Google credentials JSON is malformed: {e}")
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

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 1000
        )

    def get_categories_sheet(self) -> gspread.Worksheet:
        """Get or create the Categories worksheet."""
        return self._get_or_create(
            self._settings.categories_sheet_name, CATEGORY_COLUMNS, 100
        )

    def get_settings_sheet(self) -> gspread.Worksheet:
        """Get or create the Settings worksheet."""
        return self._get_or_create(
            self._settings.settings_sheet_name, SETTINGS_COLUMNS, 100
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


def transaction_to_row(record: TransactionRecord) -> list:
    """Convert a TransactionRecord to a spreadsheet row."""
    return [
        str(record.id),
        record.date.isoformat(),
        str(record.amount),
        record.description,
        record.category,
        record.tags_text,
        record.source.value,
        record.kind.value,
        record.account,
        record.status.value,
        str(record.original_id) if record.original_id else "",
        record.created_at.isoformat(),
    ]


def row_to_transaction(row: list, header: Optional[list[str]] = None) -> TransactionRecord:
    """
    Convert a spreadsheet row to a TransactionRecord.

    Cells are read by header name so a reordered sheet can't
    silently shift values between fields.
    """
    values = {column: "" for column in TRANSACTION_COLUMNS}
    for index, column in enumerate(header or TRANSACTION_COLUMNS):
        if column in values and index < len(row):
            values[column] = row[index]
    created_at = values["created_at"]
    return TransactionRecord(
        id=UUID(values["id"]),
        date=date.fromisoformat(values["date"]),
        amount=values["amount"],
        description=values["description"],
        category=values["category"],
        tags=values["tags"],
        source=values["source"] or "manual",
        kind=values["kind"],
        account=values["account"],
        status=values["status"] or "confirmed",
        original_id=values["original_id"] or None,
        created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(timezone.utc),
    )


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger.

    One transaction per row on the Transactions sheet.
    Settings and Categories live on their own sheets.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_transactions(self) -> list[TransactionRecord]:
        sheet = self._client.get_transactions_sheet()
        values = sheet.get_all_values()
        if not values:
            return []
        header = [cell.strip().lower() for cell in values[0]]

        records = []
        for row_number, row in enumerate(values[1:], start=2):
            if not any(cell.strip() for cell in row):  # Skip empty rows
                continue
            try:
                records.append(row_to_transaction(row, header))
            except Exception as e:
                # Hand-edited rows may not parse; they're skipped, not fatal
                logger.warning("ledger_row_skipped", row_number=row_number, error=str(e))
        return records

    async def append_transaction(self, record: TransactionRecord) -> bool:
        """
        Append a transaction to Google Sheets.

        Only the sheet lookup is retried. A failed append is raised once,
        since the row may already have been written.
        """
        try:
            sheet = await asyncio.to_thread(self._client.get_transactions_sheet)
            row = transaction_to_row(record)
            await asyncio.to_thread(sheet.append_row, row, value_input_option="RAW")
            logger.info(
                "ledger_appended",
                transaction_id=str(record.id),
                date=record.date.isoformat(),
                amount=str(record.amount),
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def list_transactions(
        self,
        limit: int = 100,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[TransactionRecord]:
        """List the most recent rows, oldest first."""
        try:
            records = await asyncio.to_thread(self._read_transactions)
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        recent = records[-limit:] if limit else []
        return [
            record for record in recent
            if (date_from is None or record.date >= date_from)
            and (date_to is None or record.date <= date_to)
        ]

    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        """Retrieve a transaction by its ID."""
        try:
            records = await asyncio.to_thread(self._read_transactions)
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

        for record in records:
            if record.id == transaction_id:
                return record
        return None

    async def get_setting(self, name: str) -> Optional[str]:
        """Look up a value on the Settings sheet (column A = name, B = value)."""
        try:
            sheet = await asyncio.to_thread(self._client.get_settings_sheet)
            rows = await asyncio.to_thread(sheet.get_all_values)
        except Exception as e:
            raise StorageError(f"Failed to read settings: {e}")

        for row in rows:
            if row and row[0] == name:
                value = row[1] if len(row) > 1 else ""
                return value or None
        return None

    async def list_categories(self) -> list[dict[str, str]]:
        """List categories from the Categories sheet."""
        try:
            sheet = await asyncio.to_thread(self._client.get_categories_sheet)
            rows = (await asyncio.to_thread(sheet.get_all_values))[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

        categories = []
        for row in rows:
            if not row or not row[0]:
                continue
            padded = list(row) + [""] * (len(CATEGORY_COLUMNS) - len(row))
            categories.append(dict(zip(CATEGORY_COLUMNS, padded)))
        return categories

    async def add_category(
        self,
        name: str,
        keywords: str = "",
        budget: str = "",
        color: str = "",
    ) -> bool:
        """Append a category row."""
        try:
            sheet = await asyncio.to_thread(self._client.get_categories_sheet)
            await asyncio.to_thread(
                sheet.append_row,
                [name, keywords, budget, color],
                value_input_option="USER_ENTERED",
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to add category: {e}")


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
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            await asyncio.to_thread(
                sheet.append_row, event.to_sheets_row(), value_input_option="RAW"
            )
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_event_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            all_rows = (await asyncio.to_thread(sheet.get_all_values))[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
