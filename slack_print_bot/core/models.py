"""Data types for files and in-flight print requests.

WHY: The coordinator, router, and collaborators pass the same few records
around: a Slack file reference, its Drive copy, and the three kinds of
pending state. Dataclasses give them typed fields and sensible defaults.

HOW: Status enums inherit from str so they serialize cleanly into the
diagnostics endpoint. FileRef.from_slack() is the only place that knows the
shape of a Slack ``files.info`` payload.

RULES:
- Record ids are "<prefix>_<epoch ms>_<random hex>" (see new_record_id)
- completed_at/attached_file are set only when a submission completes
- A FileRef may be built from a bare URL, in which case only name,
  mimetype and url are known
"""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

DEFAULT_MIME_TYPE = "application/octet-stream"
DRIVE_VIEW_URL = "https://drive.google.com/file/d/{}/view"


def new_record_id(prefix: str) -> str:
    """Time-based id with a random suffix, e.g. ``print_1718000000000_3f9a1c2b7``."""
    return "{}_{}_{}".format(prefix, int(time.time() * 1000), uuid.uuid4().hex[:9])


class SubmissionStatus(str, enum.Enum):
    """Lifecycle of a form-first print request."""

    AWAITING_FILE = "awaiting_file"
    COMPLETED = "completed"


class UploadStatus(str, enum.Enum):
    """Lifecycle of a file that was stored before its project was chosen."""

    CREATED = "created"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class WaitOutcome(str, enum.Enum):
    MATCHED = "matched"
    EXPIRED = "expired"
    MISSING = "missing"


@dataclass
class FileRef:
    """A file as the chat platform describes it.

    RULES:
    - url is the authenticated download URL (url_private_download first)
    - channels merges channels, groups and ims in that order
    - public_shares maps channel id to the list of share dicts
    """

    id: str
    name: str
    mimetype: str = DEFAULT_MIME_TYPE
    size: Optional[int] = None
    url: str = ""
    permalink: str = ""
    channels: List[str] = field(default_factory=list)
    user: str = ""
    public_shares: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_slack(cls, data: Dict[str, Any]) -> "FileRef":
        channels = (
            list(data.get("channels") or [])
            + list(data.get("groups") or [])
            + list(data.get("ims") or [])
        )
        shares = data.get("shares") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name") or data.get("title") or "",
            mimetype=data.get("mimetype") or DEFAULT_MIME_TYPE,
            size=data.get("size"),
            url=(
                data.get("url_private_download")
                or data.get("url_private")
                or data.get("permalink")
                or ""
            ),
            permalink=data.get("permalink_public") or data.get("permalink") or "",
            channels=channels,
            user=data.get("user", ""),
            public_shares=dict(shares.get("public") or {}),
        )


@dataclass
class StoredFile:
    """The Drive copy of an uploaded file."""

    id: str
    view_url: str = ""
    name: str = ""

    def __post_init__(self) -> None:
        if not self.view_url:
            self.view_url = DRIVE_VIEW_URL.format(self.id)


@dataclass
class PendingSubmission:
    """A filled-in print request form waiting for its model file."""

    id: str
    requester_id: str
    selections: Dict[str, str]
    status: SubmissionStatus
    created_at: float
    completed_at: Optional[float] = None
    attached_file: Optional[FileRef] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "selections": dict(self.selections),
            "status": self.status.value,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "file_id": self.attached_file.id if self.attached_file else None,
            "file_name": self.attached_file.name if self.attached_file else None,
        }


@dataclass
class PendingUpload:
    """A file already stored in Drive, waiting for the user to pick a project."""

    id: str
    source_file: FileRef
    stored_file: StoredFile
    submitter_display_name: str
    created_at: float
    channel_id: str = ""
    requester_id: str = ""
    status: UploadStatus = UploadStatus.CREATED
    selections: Dict[str, str] = field(default_factory=dict)


@dataclass
class WaitlistEntry:
    """A bare /print invocation waiting for the next upload in its channel."""

    channel_id: str
    requester_id: str
    created_at: float
    expires_at: float
    on_match: Callable[..., Any]


@dataclass
class WaitMatch:
    """Result of looking up the wait-list; truthy only when MATCHED."""

    outcome: WaitOutcome
    entry: Optional[WaitlistEntry] = None

    def __bool__(self) -> bool:
        return self.outcome is WaitOutcome.MATCHED
