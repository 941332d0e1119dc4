"""Google Sheets log of print submissions.

WHY: The print team works from a spreadsheet. Each completed submission
becomes one row; the project dropdowns are read from another sheet.

HOW: gspread with the shared service-account credentials. The client
and the submissions worksheet are opened lazily and reused. The header row
is written once per process if the worksheet is empty.

RULES:
- Rows are appended with value_input_option RAW (no auto-formatting)
- The submissions worksheet is created if missing
- gspread, auth and transport errors surface as UpstreamError
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Sequence

import gspread
from google.auth.exceptions import GoogleAuthError
from gspread.utils import rowcol_to_a1

from slack_print_bot.core.errors import UpstreamError
from slack_print_bot.core.pipeline import SHEET_HEADERS

logger = logging.getLogger(__name__)

SUBMISSIONS_WORKSHEET = "Submissions"

_SHEETS_ERRORS = (gspread.exceptions.GSpreadException, GoogleAuthError, OSError)


class SheetsLog:
    """Append-only submissions log plus column reads for dropdown data."""

    def __init__(
        self,
        credentials: Any,
        sheet_id: str,
        worksheet_title: str = SUBMISSIONS_WORKSHEET,
        client: Optional[Any] = None,
    ) -> None:
        self._credentials = credentials
        self.sheet_id = sheet_id
        self.worksheet_title = worksheet_title
        self._client = client
        self._worksheet = None
        self._headers_ready = False
        self._lock = threading.Lock()

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = gspread.authorize(self._credentials)
        return self._client

    def _submissions(self) -> Any:
        if self._worksheet is None:
            spreadsheet = self.client.open_by_key(self.sheet_id)
            try:
                self._worksheet = spreadsheet.worksheet(self.worksheet_title)
            except gspread.WorksheetNotFound:
                self._worksheet = spreadsheet.add_worksheet(
                    title=self.worksheet_title, rows=1000, cols=len(SHEET_HEADERS)
                )
        return self._worksheet

    def ensure_headers(self) -> None:
        """Write the header row if the first row is empty."""
        with self._lock:
            if self._headers_ready:
                return
            try:
                worksheet = self._submissions()
                if not any(worksheet.row_values(1)):
                    header_range = "A1:{}".format(rowcol_to_a1(1, len(SHEET_HEADERS)))
                    worksheet.update(range_name=header_range, values=[SHEET_HEADERS])
                    logger.info("Sheet headers set up in %s", self.worksheet_title)
            except _SHEETS_ERRORS as exc:
                raise UpstreamError("sheets", "header setup failed: {}".format(exc)) from exc
            self._headers_ready = True

    def append_row(self, values: Sequence[Any]) -> None:
        self.ensure_headers()
        try:
            self._submissions().append_row(list(values), value_input_option="RAW")
        except _SHEETS_ERRORS as exc:
            logger.error("Sheet append failed for %s: %s", self.sheet_id, exc)
            raise UpstreamError("sheets", "append failed: {}".format(exc)) from exc
        logger.info("Row appended to %s", self.worksheet_title)

    def list_column_values(self, sheet_ref: str, range_: str) -> List[str]:
        """Non-empty, stripped first-column values of ``range_`` in ``sheet_ref``."""
        try:
            result = self.client.open_by_key(sheet_ref).values_get(range_)
        except _SHEETS_ERRORS as exc:
            raise UpstreamError("sheets", "read of {} failed: {}".format(range_, exc)) from exc

        values = []
        for row in result.get("values", []):
            if row and str(row[0]).strip():
                values.append(str(row[0]).strip())
        return values

    def update_cell(self, cell: str, value: Any) -> None:
        """Overwrite one cell of the submissions worksheet, e.g. ``E12``."""
        try:
            self._submissions().update_acell(cell, value)
        except _SHEETS_ERRORS as exc:
            raise UpstreamError("sheets", "update of {} failed: {}".format(cell, exc)) from exc
        logger.info("Updated %s!%s", self.worksheet_title, cell)

    def test_connection(self, *sheet_ids: str) -> bool:
        try:
            for sheet_id in (self.sheet_id,) + sheet_ids:
                self.client.open_by_key(sheet_id)
        except _SHEETS_ERRORS as exc:
            logger.error("Sheets access test failed: %s", exc)
            return False
        logger.info("Sheets access test successful")
        return True
