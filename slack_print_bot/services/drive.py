"""Google Drive storage for uploaded print files.

WHY: Every submitted model file is copied into one shared Drive folder so
the print team has a stable link to put in the sheet.

HOW: google-api-python-client's Drive v3 service with an in-memory
MediaIoBaseUpload. The service object is built on first use, so creating
a DriveStorage never touches the network.

RULES:
- Uploads go to folder_id with supportsAllDrives=True (shared drives)
- Returned StoredFile.view_url is webViewLink, or the /file/d/<id>/view URL
- HttpError and transport errors surface as UpstreamError
"""

from __future__ import annotations

import io
import logging
from typing import Any, Optional

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from slack_print_bot.core.errors import UpstreamError
from slack_print_bot.core.models import StoredFile

logger = logging.getLogger(__name__)

_UPLOAD_FIELDS = "id, webViewLink, webContentLink, name, size"
_DRIVE_ERRORS = (HttpError, GoogleAuthError, OSError)


class DriveStorage:
    """Uploads files into a single Drive folder."""

    def __init__(self, credentials: Any, folder_id: str, service: Optional[Any] = None) -> None:
        self._credentials = credentials
        self.folder_id = folder_id
        self._service = service

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = build("drive", "v3", credentials=self._credentials, cache_discovery=False)
        return self._service

    def upload_file(self, data: bytes, filename: str, mime_type: str) -> StoredFile:
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        try:
            created = self.service.files().create(
                body={"name": filename, "parents": [self.folder_id]},
                media_body=media,
                fields=_UPLOAD_FIELDS,
                supportsAllDrives=True,
            ).execute()
        except _DRIVE_ERRORS as exc:
            logger.error("Drive upload failed for %s: %s", filename, exc)
            raise UpstreamError("drive", "upload failed for {}: {}".format(filename, exc)) from exc

        logger.info("File uploaded to Drive: %s (%s, %d bytes)", created.get("id"), filename, len(data))
        return StoredFile(
            id=created["id"],
            view_url=created.get("webViewLink") or "",
            name=created.get("name") or filename,
        )

    def test_connection(self) -> bool:
        try:
            self.service.files().list(pageSize=1, supportsAllDrives=True).execute()
        except _DRIVE_ERRORS as exc:
            logger.error("Drive access test failed: %s", exc)
            return False
        logger.info("Drive access test successful")
        return True
