"""
Google Sheets Storage Implementation

DESIGN DECISION: Each dashboard table (budget_items, budget_payments,
accounts, transactions, goals, ...) is one worksheet in a single spreadsheet,
with a header row naming the columns. Sheets hands back rows as loosely-typed
dicts, which is exactly what the reconciliation engine expects.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Limited query capabilities (we filter in Python)
- gspread is synchronous, so calls run in a worker thread to keep
  concurrent fetches from blocking each other
"""

import asyncio
from typing import Optional, Sequence

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finmate.config import GoogleSheetsSettings, get_settings
from finmate.models.audit import AuditEvent
from finmate.models.records import Record
from finmate.services.storage.filters import RowFilter, apply_filters
from finmate.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    FetchFailedError,
    RowSourceInterface,
)


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

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials, read-only for the dashboard tables.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive.readonly",
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

    def get_worksheet(self, name: str) -> gspread.Worksheet:
        """Get the worksheet holding one table."""
        return self.get_spreadsheet().worksheet(name)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.audit_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.audit_sheet_name,
                rows=5000,
                cols=len(AUDIT_COLUMNS),
            )
            sheet.append_row(AUDIT_COLUMNS)
        return sheet


def _blank_to_none(row: Record) -> Record:
    # Empty cells come back as "" - the engine treats missing and None alike
    return {key: (None if value == "" else value) for key, value in row.items()}


class GoogleSheetsRowSource(RowSourceInterface):
    """
    Google Sheets implementation of the row source.

    One worksheet per table; the first row is the header. Filters, ordering
    and limits are applied in Python after reading the whole sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_table(self, table: str) -> list[Record]:
        sheet = self._client.get_worksheet(table)
        return [_blank_to_none(row) for row in sheet.get_all_records()]

    async def fetch_rows(
        self,
        table: str,
        user_id: Optional[str] = None,
        filters: Sequence[RowFilter] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Record]:
        """Read a worksheet and filter it like a backend query."""
        try:
            rows = await asyncio.to_thread(self._read_table, table)
        except gspread.WorksheetNotFound:
            raise FetchFailedError(table, "worksheet not found")
        except Exception as e:
            raise FetchFailedError(table, str(e))

        return apply_filters(
            rows,
            user_id=user_id,
            filters=filters,
            limit=limit,
            order_by=order_by,
            descending=descending,
        )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append(self, event: AuditEvent) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        await asyncio.to_thread(self._append, event)
        return True
