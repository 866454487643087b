"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as an alternative backend because:
1. Users can view and share their expenses directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (the query engine filters in Python anyway)

The implementation follows the abstract interface, so callers never
know which backend they are talking to.
"""

import json
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_scanner.config import GoogleSheetsSettings, get_settings
from expense_scanner.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventType,
    AuditSeverity,
)
from expense_scanner.models.expense import ExpenseRecord, Preferences
from expense_scanner.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "merchant",
    "amount",
    "currency",
    "date",
    "category",
    "payment_method",
]

PREFERENCE_COLUMNS = ["key", "value_json"]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def expense_to_row(expense: ExpenseRecord) -> list:
    """Convert an ExpenseRecord to a spreadsheet row."""
    return [
        str(expense.id),
        expense.merchant,
        str(expense.amount),
        expense.currency,
        expense.date,
        expense.category,
        expense.payment_method,
    ]


def row_to_expense(row: list) -> ExpenseRecord:
    """Convert a spreadsheet row to an ExpenseRecord."""
    return ExpenseRecord(
        id=UUID(_safe_get(row, 0)),
        merchant=_safe_get(row, 1),
        amount=Decimal(_safe_get(row, 2, "0")),
        currency=_safe_get(row, 3),
        date=_safe_get(row, 4),
        category=_safe_get(row, 5),
        payment_method=_safe_get(row, 6),
    )


def preferences_to_rows(preferences: Preferences) -> list[list]:
    """One key/value row per preference field, values JSON-encoded."""
    return [
        [key, json.dumps(value, ensure_ascii=False)]
        for key, value in preferences.model_dump(mode="json").items()
    ]


def rows_to_preferences(rows: list[list]) -> Preferences:
    data = {}
    for row in rows:
        key, value = _safe_get(row, 0), _safe_get(row, 1)
        if key and value:
            data[key] = json.loads(value)
    return Preferences.model_validate(data)


def event_to_row(event: AuditEvent) -> list:
    return event.to_sheets_row()


def row_to_event(row: list) -> AuditEvent:
    """Convert a spreadsheet row to an AuditEvent."""
    return AuditEvent(
        event_id=UUID(_safe_get(row, 0)),
        timestamp=_safe_get(row, 1),
        event_type=AuditEventType(_safe_get(row, 2)),
        severity=AuditSeverity(_safe_get(row, 3)),
        entity_type=_safe_get(row, 4) or None,
        entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
        correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
        description=_safe_get(row, 7),
        details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
        error_message=_safe_get(row, 9) or None,
        is_user_action=_safe_get(row, 10).lower() == "true",
    )


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

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet whose first row holds `columns`."""
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

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_preferences_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.preferences_sheet_name, PREFERENCE_COLUMNS, rows=20
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    Expenses are stored one per row, newest batch directly under the
    header. Preferences live on their own key/value sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def add_expenses(self, expenses: list[ExpenseRecord]) -> int:
        """
        Insert new expenses right below the header row.

        Only the sheet lookup is retried; insert_rows is not idempotent.
        """
        if not expenses:
            return 0
        try:
            sheet = self._client.get_expenses_sheet()
            rows = [expense_to_row(expense) for expense in expenses]
            sheet.insert_rows(rows, row=2, value_input_option="RAW")
            return len(rows)
        except Exception as e:
            raise StorageError(f"Failed to save expenses: {e}")

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        try:
            sheet = self._client.get_expenses_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(expense_id):
                    return row_to_expense(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def update_expense(self, expense: ExpenseRecord) -> bool:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()

            # Row 1 is the header
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(expense.id):
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[expense_to_row(expense)],
                        value_input_option="RAW",
                    )
                    return True

            raise NotFoundError(f"Expense not found: {expense.id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, expense_id: UUID) -> bool:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(expense_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    async def list_expenses(self) -> list[ExpenseRecord]:
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        expenses = []
        for idx, row in enumerate(all_rows, start=2):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                expenses.append(row_to_expense(row))
            except Exception as e:
                logger.warning("skipped_malformed_row", sheet_row=idx, error=str(e))
        return expenses

    async def load_preferences(self) -> Preferences:
        try:
            sheet = self._client.get_preferences_sheet()
            rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to load preferences: {e}")

        # JSONDecodeError and ValidationError are both ValueErrors
        try:
            return rows_to_preferences(rows)
        except ValueError as e:
            logger.warning("preferences_reset", sheet=sheet.title, error=str(e))
            return Preferences()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_preferences(self, preferences: Preferences) -> bool:
        try:
            sheet = self._client.get_preferences_sheet()
            sheet.batch_clear(["A2:B"])
            sheet.update(
                range_name="A2",
                values=preferences_to_rows(preferences),
                value_input_option="RAW",
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save preferences: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        # append_row is not idempotent, so this write is attempted once
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event_to_row(event), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(row_to_event(row))
                except Exception:
                    continue

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
