"""
Google Sheets Ledger Adapter

DESIGN DECISION: Google Sheets is the ledger backend because:
1. Every traveller can open the ledger directly in Sheets
2. No database setup required
3. The spreadsheet doubles as an export

TRADEOFFS:
- No transactions; a row's position is its only identity
- Deleting a row shifts every row below it; the next full reload
  replaces local row indexes (last reload wins)
- Concurrent edits from two devices are not merged

Each ledger is its own spreadsheet with a transactions sheet. A
management spreadsheet lists the available ledgers.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from tripsplit.config import GoogleSheetsSettings, get_settings
from tripsplit.engine.codec import decode_participants
from tripsplit.engine.numeric import ZERO, to_decimal
from tripsplit.models.ledger import RECORD_COLUMNS, LedgerInfo, RawTransactionRecord
from tripsplit.services.storage.interface import (
    ConnectionError,
    LedgerSyncAdapter,
    NotFoundError,
    StorageError,
)

# Column mappings for the management Ledgers sheet
LEDGER_COLUMNS = [
    "id",
    "name",
    "url",
    "sourceUrl",
    "currency",
    "exchangeRate",
    "members",
]

# Row 1 holds the headers
FIRST_DATA_ROW = 2


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and caches opened spreadsheets.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheets: dict[str, gspread.Spreadsheet] = {}
        self._settings = settings or get_settings().google_sheets

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

    def get_spreadsheet(self, ref: str) -> gspread.Spreadsheet:
        """Open a spreadsheet by URL or key."""
        if ref not in self._spreadsheets:
            client = self.connect()
            try:
                if ref.startswith("http"):
                    spreadsheet = client.open_by_url(ref)
                else:
                    spreadsheet = client.open_by_key(ref)
            except gspread.SpreadsheetNotFound:
                raise NotFoundError(f"Spreadsheet not found: {ref}")
            self._spreadsheets[ref] = spreadsheet
        return self._spreadsheets[ref]

    def _get_or_create(
        self,
        ref: str,
        title: str,
        columns: list[str],
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet(ref)
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self, ledger_ref: str) -> gspread.Worksheet:
        return self._get_or_create(
            ledger_ref,
            self._settings.transactions_sheet_name,
            RECORD_COLUMNS,
        )

    def get_ledgers_sheet(self, management_ref: str) -> gspread.Worksheet:
        return self._get_or_create(
            management_ref,
            self._settings.ledgers_sheet_name,
            LEDGER_COLUMNS,
        )


def row_to_ledger(row: list) -> Optional[LedgerInfo]:
    """Convert a Ledgers sheet row, or None for a row without an id."""
    def safe_get(index: int) -> str:
        try:
            return str(row[index]).strip()
        except IndexError:
            return ""

    if not safe_get(0):
        return None
    return LedgerInfo(
        id=safe_get(0),
        name=safe_get(1),
        url=safe_get(2),
        source_url=safe_get(3) or None,
        currency=safe_get(4),
        exchange_rate=max(to_decimal(safe_get(5), default=Decimal("1")), ZERO),
        members=decode_participants(safe_get(6)),
    )


class GoogleSheetsLedgerAdapter(LedgerSyncAdapter):
    """
    Google Sheets implementation of the ledger sync interface.

    Transactions are rows in RECORD_COLUMNS order; a record's row
    index is its sheet row number.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def list_transactions(self, ledger_ref: str) -> list[RawTransactionRecord]:
        try:
            sheet = await asyncio.to_thread(self._client.get_transactions_sheet, ledger_ref)
            all_rows = await asyncio.to_thread(sheet.get_all_values)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}") from e

        records = []
        for idx, row in enumerate(all_rows[1:], start=FIRST_DATA_ROW):
            if not any(str(cell).strip() for cell in row):
                continue  # Skip empty rows
            records.append(RawTransactionRecord.from_row(row, row_index=idx))
        return records

    async def create_transaction(self, ledger_ref: str, record: RawTransactionRecord) -> None:
        def append() -> None:
            sheet = self._client.get_transactions_sheet(ledger_ref)
            sheet.append_row(record.to_row(), value_input_option="RAW")

        try:
            await asyncio.to_thread(append)
        except Exception as e:
            raise StorageError(f"Failed to create transaction: {e}") from e

    async def update_transaction(
        self,
        ledger_ref: str,
        row_index: int,
        record: RawTransactionRecord,
    ) -> None:
        if row_index < FIRST_DATA_ROW:
            raise NotFoundError(f"No transaction row at {row_index}")

        def update() -> None:
            sheet = self._client.get_transactions_sheet(ledger_ref)
            cell_range = (
                f"{rowcol_to_a1(row_index, 1)}:"
                f"{rowcol_to_a1(row_index, len(RECORD_COLUMNS))}"
            )
            sheet.batch_update(
                [{"range": cell_range, "values": [record.to_row()]}],
                value_input_option="RAW",
            )

        try:
            await asyncio.to_thread(update)
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}") from e

    async def delete_transaction(self, ledger_ref: str, row_index: int) -> None:
        if row_index < FIRST_DATA_ROW:
            raise NotFoundError(f"No transaction row at {row_index}")

        def delete() -> None:
            sheet = self._client.get_transactions_sheet(ledger_ref)
            sheet.delete_rows(row_index)

        try:
            await asyncio.to_thread(delete)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}") from e

    async def list_ledgers(self, management_ref: str) -> list[LedgerInfo]:
        try:
            sheet = await asyncio.to_thread(self._client.get_ledgers_sheet, management_ref)
            all_rows = (await asyncio.to_thread(sheet.get_all_values))[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list ledgers: {e}") from e

        ledgers = []
        for row in all_rows:
            try:
                ledger = row_to_ledger(row)
            except ValueError:
                continue  # Skip malformed rows
            if ledger is not None:
                ledgers.append(ledger)
        return ledgers
