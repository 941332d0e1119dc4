"""Upload + log pipeline: Slack file -> Google Drive -> Google Sheets row.

WHY: Both the form-first and the upload-first paths end the same way: the
file is copied to Drive and a row describing it lands in the submissions
sheet. Keeping that sequence here lets the router stay purely about
correlation and state.

HOW: store() downloads the bytes through the chat gateway and uploads them
to storage. lookup_submitter() resolves the display name and permalink
concurrently; both are cosmetic, so failures degrade to placeholders and
never block the upload or the log row. log() appends one SubmissionRow.

RULES:
- Files over the size limit are rejected before download
- Missing filename -> "upload-<epoch ms>", missing MIME type -> octet-stream
- Row layout: Order, Timestamp (MM/DD/YYYY), User, File Name, Project Name,
  Drive Link, Notes, Printer, Materials, Slack Link
- Order is left blank; the sheet fills it with a formula
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from slack_print_bot.core.files import MAX_FILE_BYTES, check_file_size
from slack_print_bot.core.models import DEFAULT_MIME_TYPE, FileRef, StoredFile

logger = logging.getLogger(__name__)

SHEET_HEADERS = [
    "Order",
    "Timestamp",
    "User",
    "File Name",
    "Project Name",
    "Drive Link",
    "Notes",
    "Printer",
    "Materials",
    "Slack Link",
]

ENRICHMENT_TIMEOUT_S = 10.0


@dataclass
class Submitter:
    display_name: str
    permalink: str = ""


@dataclass
class SubmissionRow:
    """One line of the submissions sheet."""

    user: str
    file_name: str
    project: str
    drive_link: str
    notes: str = ""
    printer: str = ""
    material: str = ""
    slack_link: str = ""
    submitted_at: datetime = field(default_factory=datetime.now)

    def to_values(self) -> List[str]:
        return [
            "",
            self.submitted_at.strftime("%m/%d/%Y"),
            self.user,
            self.file_name or "unknown",
            self.project,
            self.drive_link,
            self.notes,
            self.printer,
            self.material,
            self.slack_link,
        ]


class UploadPipeline:
    """Runs the side effects of a submission against the collaborators."""

    def __init__(
        self,
        chat: Any,
        storage: Any,
        sheet: Any,
        max_file_bytes: int = MAX_FILE_BYTES,
        enrichment_timeout: float = ENRICHMENT_TIMEOUT_S,
    ) -> None:
        self.chat = chat
        self.storage = storage
        self.sheet = sheet
        self.max_file_bytes = max_file_bytes
        self.enrichment_timeout = enrichment_timeout

    def store(self, file_ref: FileRef) -> StoredFile:
        """Download the file from Slack and upload it to Drive."""
        check_file_size(file_ref, self.max_file_bytes)

        started = time.monotonic()
        data = self.chat.download_file_bytes(file_ref)
        logger.info(
            "File downloaded: %s (%d bytes, %.0fms)",
            file_ref.name, len(data), (time.monotonic() - started) * 1000,
        )

        filename = file_ref.name or "upload-{}".format(int(time.time() * 1000))
        started = time.monotonic()
        stored = self.storage.upload_file(data, filename, file_ref.mimetype or DEFAULT_MIME_TYPE)
        logger.info(
            "File uploaded to Drive: %s (%.0fms)", stored.id, (time.monotonic() - started) * 1000
        )
        return stored

    def lookup_submitter(self, user_id: str, file_ref: Optional[FileRef] = None) -> Submitter:
        """Resolve display name and permalink concurrently, best-effort."""
        executor = ThreadPoolExecutor(max_workers=2)
        try:
            name_future = executor.submit(self.chat.resolve_user_display_name, user_id)
            link_future = (
                executor.submit(self.chat.resolve_permalink, file_ref) if file_ref else None
            )
            display_name = self._best_effort(name_future, "display name") or user_id
            permalink = self._best_effort(link_future, "permalink") if link_future else ""
        finally:
            executor.shutdown(wait=False)
        return Submitter(display_name=display_name, permalink=permalink or "")

    def _best_effort(self, future: Any, what: str) -> Optional[str]:
        try:
            return future.result(timeout=self.enrichment_timeout)
        except Exception:
            logger.warning("Could not resolve %s", what, exc_info=True)
            return None

    def log(self, row: SubmissionRow) -> None:
        self.sheet.append_row(row.to_values())
        logger.info("Logged %s for project %s", row.file_name, row.project)
