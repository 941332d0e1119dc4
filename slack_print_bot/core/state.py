"""Submission state machine: pending requests, pending uploads, wait-list.

WHY: A print request reaches the bot in pieces that Slack delivers
independently and sometimes more than once. The coordinator owns the three
registries that correlate those pieces and enforces the transitions, so a
duplicate file_shared event can never log the same request twice.

HOW: One ExpiringRegistry per record kind, all driven by the same clock.
Every public method takes the coordinator lock, so a lookup followed by a
transition is atomic relative to other deliveries. No network I/O happens
here; the router calls collaborators outside the lock.

    PendingSubmission  AwaitingFile -> Completed
    PendingUpload      Created -> Confirmed | Cancelled | Expired
    WaitlistEntry      Waiting -> Matched | Expired

RULES:
- Required form fields: project, printer, material, notes
- "none" is the placeholder option value and counts as empty
- Validation failures never mutate a registry
- Awaiting submissions never expire; completed ones are kept for
  COMPLETED_RETENTION_S so duplicate deliveries still hit the guard
- Pending uploads live PENDING_UPLOAD_TTL_S, wait-list entries WAIT_TTL_S
- find_awaiting_submission() is first-found in insertion order, not most
  recent; the "replace" policy keeps one awaiting record per requester
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from slack_print_bot.core.errors import ExpiredError, StateError, ValidationError
from slack_print_bot.core.models import (
    FileRef,
    PendingSubmission,
    PendingUpload,
    StoredFile,
    SubmissionStatus,
    UploadStatus,
    WaitlistEntry,
    WaitMatch,
    WaitOutcome,
    new_record_id,
)
from slack_print_bot.core.registry import Clock, ExpiringRegistry

logger = logging.getLogger(__name__)

REQUIRED_SUBMISSION_FIELDS = ("project", "printer", "material", "notes")
REQUIRED_UPLOAD_FIELDS = ("project",)
PLACEHOLDER_VALUE = "none"

WAIT_TTL_S = 120.0
PENDING_UPLOAD_TTL_S = 300.0
COMPLETED_RETENTION_S = 3600.0

POLICY_ACCUMULATE = "accumulate"
POLICY_REPLACE = "replace"
SUBMISSION_POLICIES = (POLICY_ACCUMULATE, POLICY_REPLACE)


def validate_required(selections: Mapping[str, Any], required: Iterable[str]) -> Dict[str, str]:
    """Return the stripped selections, or raise ValidationError on the first gap."""
    cleaned = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in selections.items()
    }
    for name in required:
        value = cleaned.get(name)
        if not isinstance(value, str) or not value or value == PLACEHOLDER_VALUE:
            raise ValidationError(name, "Please provide a {} before submitting.".format(name))
    return cleaned


class SubmissionCoordinator:
    """Owns the pending-state registries and their transitions."""

    def __init__(
        self,
        clock: Clock = time.time,
        submission_policy: str = POLICY_ACCUMULATE,
    ) -> None:
        if submission_policy not in SUBMISSION_POLICIES:
            raise ValueError("Unknown submission policy: {}".format(submission_policy))
        self._clock = clock
        self._lock = threading.RLock()
        self.submission_policy = submission_policy
        self.submissions: ExpiringRegistry[str, PendingSubmission] = ExpiringRegistry(
            "submission", clock
        )
        self.uploads: ExpiringRegistry[str, PendingUpload] = ExpiringRegistry(
            "pending upload", clock
        )
        self.waitlist: ExpiringRegistry[Tuple[str, str], WaitlistEntry] = ExpiringRegistry(
            "wait-list", clock
        )

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Form-first submissions
    # ------------------------------------------------------------------

    def create_submission(self, requester_id: str, selections: Mapping[str, Any]) -> str:
        """Validate the form fields and store a new AwaitingFile submission.

        RULES:
        - Raises ValidationError naming the first missing field
        - Under the "replace" policy, older awaiting records of the same
          requester are dropped
        """
        cleaned = validate_required(selections, REQUIRED_SUBMISSION_FIELDS)
        submission = PendingSubmission(
            id=new_record_id("print"),
            requester_id=requester_id,
            selections=cleaned,
            status=SubmissionStatus.AWAITING_FILE,
            created_at=self._clock(),
        )

        with self._lock:
            if self.submission_policy == POLICY_REPLACE:
                for existing in self._awaiting_for(requester_id):
                    self.submissions.delete(existing.id)
                    logger.info(
                        "Replaced awaiting submission %s for %s", existing.id, requester_id
                    )
            self.submissions.put(submission.id, submission)

        logger.info("Created submission %s for %s", submission.id, requester_id)
        return submission.id

    def _awaiting_for(self, requester_id: str) -> List[PendingSubmission]:
        return [
            s for s in self.submissions.values()
            if s.requester_id == requester_id and s.status is SubmissionStatus.AWAITING_FILE
        ]

    def find_awaiting_submission(self, requester_id: str) -> Optional[PendingSubmission]:
        """Linear scan for the first AwaitingFile record of this requester."""
        with self._lock:
            awaiting = self._awaiting_for(requester_id)
            return awaiting[0] if awaiting else None

    def get_submission(self, submission_id: str) -> Optional[PendingSubmission]:
        return self.submissions.get(submission_id)

    def list_submissions(self) -> List[PendingSubmission]:
        return self.submissions.values()

    def complete_submission(self, submission_id: str, file_ref: FileRef) -> PendingSubmission:
        """Transition AwaitingFile -> Completed and attach the file.

        RULES:
        - StateError if the id is unknown or already completed
        - The completed record is retained for COMPLETED_RETENTION_S
        """
        with self._lock:
            submission = self.submissions.get(submission_id)
            if submission is None:
                raise StateError(submission_id, "unknown submission")
            if submission.status is SubmissionStatus.COMPLETED:
                raise StateError(submission_id, "submission already completed")

            submission.status = SubmissionStatus.COMPLETED
            submission.completed_at = self._clock()
            submission.attached_file = file_ref
            # Re-put keeps the same object but starts the retention clock.
            self.submissions.put(submission_id, submission, ttl=COMPLETED_RETENTION_S)

        logger.info("Completed submission %s with file %s", submission_id, file_ref.id)
        return submission

    # ------------------------------------------------------------------
    # Upload-first (legacy) path
    # ------------------------------------------------------------------

    def create_pending_upload(
        self,
        source_file: FileRef,
        stored_file: StoredFile,
        submitter_display_name: str,
        channel_id: str = "",
        requester_id: str = "",
    ) -> str:
        upload = PendingUpload(
            id=new_record_id("file"),
            source_file=source_file,
            stored_file=stored_file,
            submitter_display_name=submitter_display_name,
            created_at=self._clock(),
            channel_id=channel_id,
            requester_id=requester_id,
        )
        with self._lock:
            self.uploads.put(upload.id, upload, ttl=PENDING_UPLOAD_TTL_S)
        logger.info("Created pending upload %s for %s", upload.id, source_file.name)
        return upload.id

    def _take_upload(self, upload_id: str) -> PendingUpload:
        upload = self.uploads.get(upload_id)
        if upload is None:
            raise StateError(upload_id, "unknown or already finished pending upload")
        if self.uploads.is_expired(upload_id):
            expires_at = self.uploads.expires_at(upload_id) or self._clock()
            self.uploads.delete(upload_id)
            upload.status = UploadStatus.EXPIRED
            raise ExpiredError(upload_id, expires_at)
        return upload

    def confirm_pending_upload(
        self, upload_id: str, selections: Mapping[str, Any]
    ) -> PendingUpload:
        """Attach the chosen project/notes and finish the pending upload.

        RULES:
        - StateError if unknown (already confirmed, cancelled, or swept)
        - ExpiredError if past its deadline but not yet swept
        - ValidationError leaves the record in place for another attempt
        """
        with self._lock:
            upload = self._take_upload(upload_id)
            cleaned = validate_required(selections, REQUIRED_UPLOAD_FIELDS)
            self.uploads.delete(upload_id)
            upload.selections = cleaned
            upload.status = UploadStatus.CONFIRMED

        logger.info("Confirmed pending upload %s", upload_id)
        return upload

    def restore_pending_upload(self, upload: PendingUpload) -> None:
        """Put a confirmed upload back so the same button can be retried.

        The original deadline is kept: a restore never extends the lifetime.
        """
        remaining = upload.created_at + PENDING_UPLOAD_TTL_S - self._clock()
        with self._lock:
            upload.status = UploadStatus.CREATED
            self.uploads.put_if_absent(upload.id, upload, ttl=remaining)
        logger.info("Restored pending upload %s (%.0fs left)", upload.id, remaining)

    def cancel_pending_upload(self, upload_id: str) -> PendingUpload:
        with self._lock:
            upload = self._take_upload(upload_id)
            self.uploads.delete(upload_id)
            upload.status = UploadStatus.CANCELLED

        logger.info("Cancelled pending upload %s", upload_id)
        return upload

    # ------------------------------------------------------------------
    # Wait-list
    # ------------------------------------------------------------------

    def register_wait(
        self, channel_id: str, requester_id: str, on_match: Callable[..., Any]
    ) -> WaitlistEntry:
        now = self._clock()
        entry = WaitlistEntry(
            channel_id=channel_id,
            requester_id=requester_id,
            created_at=now,
            expires_at=now + WAIT_TTL_S,
            on_match=on_match,
        )
        with self._lock:
            self.waitlist.put((channel_id, requester_id), entry, ttl=WAIT_TTL_S)
        logger.info("Waiting for upload from %s in %s", requester_id, channel_id)
        return entry

    def resolve_wait(self, channel_id: str, requester_id: str) -> WaitMatch:
        """Claim the wait-list entry for (channel, user). Never raises.

        A present but stale entry is removed and reported as EXPIRED, which
        is still "no match" for the caller.
        """
        key = (channel_id, requester_id)
        with self._lock:
            entry = self.waitlist.get(key)
            if entry is None:
                return WaitMatch(WaitOutcome.MISSING)
            expired = self.waitlist.is_expired(key)
            self.waitlist.delete(key)

        if expired:
            logger.info("Wait-list entry for %s in %s expired", requester_id, channel_id)
            return WaitMatch(WaitOutcome.EXPIRED, entry)
        return WaitMatch(WaitOutcome.MATCHED, entry)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[float] = None) -> Dict[str, int]:
        """Remove expired entries from every registry; returns counts per kind."""
        now = self._clock() if now is None else now
        with self._lock:
            counts = {
                "submissions": self.submissions.sweep(now),
                "uploads": self.uploads.sweep(now),
                "waitlist": self.waitlist.sweep(now),
            }
        if any(counts.values()):
            logger.debug("Cleaned expired entries: %s", counts)
        return counts
