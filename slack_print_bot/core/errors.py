"""Error taxonomy for the print-request coordinator.

WHY: Every trigger handler has to turn failures into exactly one reply for
the user. Typed exceptions let the router tell a missing form field apart
from a double-click, a Google outage, or a wait window that ran out.

HOW: A small hierarchy under PrintBotError. Collaborators (Slack, Drive,
Sheets) wrap their library exceptions in UpstreamError with ``raise ... from``
so the router never needs to import slack_sdk or googleapiclient.

RULES:
- ValidationError is always user-visible and never retried
- StateError on an already-terminal entity is a benign no-op
- UpstreamError messages are logged, never shown verbatim to users
- ExpiredError means "window expired, please retry"
"""

from __future__ import annotations


class PrintBotError(Exception):
    """Base class for all errors raised by the coordinator and collaborators."""


class ValidationError(PrintBotError):
    """A required field is missing/empty, or a file reference cannot be parsed.

    RULES:
    - field names the offending input ("project", "notes", "file", ...)
    - message is safe to show to the user as-is
    """

    def __init__(self, field: str, message: str = "") -> None:
        self.field = field
        self.message = message or "Please provide a value for {}.".format(field)
        super().__init__(self.message)


class StateError(PrintBotError):
    """An operation targets an unknown or already-terminal entity."""

    def __init__(self, entity_id: str, message: str) -> None:
        self.entity_id = entity_id
        self.message = message
        super().__init__("{}: {}".format(entity_id, message))


class UpstreamError(PrintBotError):
    """A collaborator call failed (network, auth, quota).

    WHY: The router surfaces a generic failure to the user and logs the
    detail. Keeping the service name on the exception makes the log line
    useful without leaking anything into Slack.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        self.message = message
        super().__init__("{} error: {}".format(service, message))


class ExpiredError(PrintBotError):
    """An operation targets a wait-list or pending-upload entry past its deadline."""

    def __init__(self, entity_id: str, expired_at: float) -> None:
        self.entity_id = entity_id
        self.expired_at = expired_at
        super().__init__("{} expired at {:.0f}".format(entity_id, expired_at))
