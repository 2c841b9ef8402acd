"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Non-technical users can see their data is really there
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

LAYOUT: One worksheet, one row per user:
    user_id | updated_at | chunk_count | chunk_1 | chunk_2 | ...
The snapshot is stored as JSON split across cells, because Sheets caps a
single cell at 50,000 characters.

TRADEOFFS:
- Whole-snapshot writes; last writer wins
- gspread is blocking, so calls run in a worker thread

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing the engine.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from budget_tracker.config import GoogleSheetsSettings, get_settings
from budget_tracker.models.snapshot import LedgerSnapshot
from budget_tracker.services.storage.interface import (
    ConnectionError,
    PersistenceGateway,
    SnapshotFormatError,
    StorageError,
)

logger = structlog.get_logger(__name__)

# Fixed columns before the JSON chunks
SNAPSHOT_COLUMNS = [
    "user_id",
    "updated_at",
    "chunk_count",
]

USER_ID_COLUMN = 1


def split_chunks(payload: str, chunk_size: int) -> list[str]:
    """Split serialized JSON into cell-sized pieces."""
    if not payload:
        return [""]
    return [payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size)]


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
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(f"Spreadsheet not found: {self._settings.spreadsheet_id}")
        return self._spreadsheet

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        """Get or create the Snapshots worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.snapshots_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.snapshots_sheet_name,
                rows=100,
                cols=len(SNAPSHOT_COLUMNS) + 1,
            )
            sheet.append_row(SNAPSHOT_COLUMNS + ["chunk_1"])
        return sheet


class GoogleSheetsGateway(PersistenceGateway):
    """
    Google Sheets implementation of the persistence gateway.

    Each user's snapshot lives in a single row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, sheet: gspread.Worksheet, user_id: str) -> Optional[int]:
        """1-based row index of a user's snapshot, skipping the header."""
        for index, value in enumerate(sheet.col_values(USER_ID_COLUMN)[1:], start=2):
            if value == user_id:
                return index
        return None

    def _snapshot_to_row(self, user_id: str, snapshot: LedgerSnapshot) -> list[str]:
        payload = json.dumps(snapshot.to_document(), separators=(",", ":"))
        chunks = split_chunks(payload, self._client.settings.chunk_size)
        return [user_id, datetime.now(timezone.utc).isoformat(), str(len(chunks)), *chunks]

    def _row_to_snapshot(self, user_id: str, row: list[str]) -> LedgerSnapshot:
        try:
            chunk_count = int(row[2])
            chunks = row[3:3 + chunk_count]
            if len(chunks) != chunk_count:
                raise SnapshotFormatError(
                    f"Snapshot for {user_id} has {len(chunks)} of {chunk_count} chunks"
                )
            return LedgerSnapshot.from_document(json.loads("".join(chunks)))
        except SnapshotFormatError:
            raise
        except (IndexError, ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            raise SnapshotFormatError(f"Snapshot for {user_id} is unreadable: {e}")

    def _load_sync(self, user_id: str) -> Optional[LedgerSnapshot]:
        try:
            sheet = self._client.get_snapshots_sheet()
            row_index = self._find_row(sheet, user_id)
            if row_index is None:
                return None
            row = sheet.row_values(row_index)
        except StorageError:
            raise
        except Exception as e:
            raise ConnectionError(f"Failed to load snapshot: {e}")
        return self._row_to_snapshot(user_id, row)

    def _save_sync(self, user_id: str, snapshot: LedgerSnapshot) -> bool:
        row = self._snapshot_to_row(user_id, snapshot)
        try:
            sheet = self._client.get_snapshots_sheet()
            if sheet.col_count < len(row):
                sheet.add_cols(len(row) - sheet.col_count)

            row_index = self._find_row(sheet, user_id)
            if row_index is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(
                    range_name=f"A{row_index}",
                    values=[row],
                    value_input_option="RAW",
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save snapshot: {e}")

        logger.info("snapshot_written", user_id=user_id, chunks=int(row[2]))
        return True

    @retry(
        retry=retry_if_exception_type(ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def load(self, user_id: str) -> Optional[LedgerSnapshot]:
        """Load a user's snapshot from the sheet."""
        return await asyncio.to_thread(self._load_sync, user_id)

    async def save(self, user_id: str, snapshot: LedgerSnapshot) -> bool:
        """
        Write a user's snapshot row.

        Not retried here: the next debounced write is the retry.
        """
        return await asyncio.to_thread(self._save_sync, user_id, snapshot)
