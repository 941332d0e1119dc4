"""Parsing and validation of user-supplied file references.

WHY: ``/print <text>`` accepts either a Slack file id or a direct URL.
Anything else is a user error that deserves a clear message, not a failed
API call.

RULES:
- Slack file ids match ^F[A-Z0-9]{8,}$
- URL filenames are sanitized to [A-Za-z0-9.-], single underscores,
  at most 255 characters
- Files above MAX_FILE_BYTES are rejected before download
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

from slack_print_bot.core.errors import ValidationError
from slack_print_bot.core.models import DEFAULT_MIME_TYPE, FileRef

MAX_FILE_BYTES = 50 * 1024 * 1024

_FILE_ID_RE = re.compile(r"^F[A-Z0-9]{8,}$")

USAGE_HINT = "Provide a Slack file ID (F123…) or a URL, or upload a file after /print."


@dataclass
class FileReference:
    """What the user typed after /print: a file id to look up, or a ready FileRef."""

    file_id: Optional[str] = None
    file_ref: Optional[FileRef] = None


def sanitize_filename(filename: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9.-]", "_", filename)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    return cleaned[:255]


def validate_file_id(file_id: str) -> str:
    if not _FILE_ID_RE.match(file_id or ""):
        raise ValidationError("file", "Invalid Slack file ID format: {}".format(file_id))
    return file_id


def parse_file_reference(text: str) -> FileReference:
    """Classify the slash-command text as a Slack file id or a URL."""
    value = (text or "").strip()
    if value.startswith("F"):
        return FileReference(file_id=validate_file_id(value))
    if value.startswith("http"):
        path = urlparse(value).path
        name = unquote(path.rstrip("/").split("/")[-1]) if path else ""
        return FileReference(
            file_ref=FileRef(
                id="",
                name=sanitize_filename(name or "file"),
                mimetype=DEFAULT_MIME_TYPE,
                url=value,
            )
        )
    raise ValidationError("file", USAGE_HINT)


def check_file_size(file_ref: FileRef, max_bytes: int = MAX_FILE_BYTES) -> None:
    if file_ref.size and file_ref.size > max_bytes:
        raise ValidationError(
            "file",
            "File size exceeds maximum allowed size of {}MB".format(max_bytes // (1024 * 1024)),
        )
