"""Inbound event router: Slack triggers -> submission state machine.

WHY: Four unrelated deliveries (slash command, modal submission,
file_shared event, button clicks on the upload prompt) together make up one
print request. The router classifies each trigger, drives the coordinator,
and delegates every side effect to collaborators. It never touches bolt or
the network directly, so the correlation rules are testable with mocks.

HOW: Each handle_* method is a trigger boundary. It catches the error
taxonomy and turns it into exactly one user-facing reply; anything else
propagates to the bolt binding, which logs it and abandons that trigger.

RULES:
- /print <ref>      -> upload immediately, then prompt for the project
- /print (form)     -> open the modal; if that fails, explain and wait
- /print (waitlist) -> register a 2-minute wait-list entry
- file_shared       -> awaiting submission first, then wait-list, else ignore
- A StateError from complete_submission (duplicate delivery) falls through
  to the wait-list check
- "No pending request" and "no wait-list entry" are silent
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional

from slack_print_bot.core.errors import (
    ExpiredError,
    PrintBotError,
    StateError,
    UpstreamError,
    ValidationError,
)
from slack_print_bot.core.files import parse_file_reference
from slack_print_bot.core.models import FileRef, PendingSubmission, WaitOutcome
from slack_print_bot.core.pipeline import SubmissionRow, UploadPipeline
from slack_print_bot.core.state import SubmissionCoordinator, validate_required
from slack_print_bot.slack import messages

logger = logging.getLogger(__name__)

COMMAND_MODE_FORM = "form"
COMMAND_MODE_WAITLIST = "waitlist"
COMMAND_MODES = (COMMAND_MODE_FORM, COMMAND_MODE_WAITLIST)
FORM_SELECTION_FIELDS = ("project", "printer", "material")

Respond = Callable[..., Any]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class SubmissionRouter:
    """Correlates Slack triggers with pending print requests."""

    def __init__(
        self,
        coordinator: SubmissionCoordinator,
        chat: Any,
        pipeline: UploadPipeline,
        catalog: Any,
        command_mode: str = COMMAND_MODE_FORM,
    ) -> None:
        if command_mode not in COMMAND_MODES:
            raise ValueError("Unknown command mode: {}".format(command_mode))
        self.coordinator = coordinator
        self.chat = chat
        self.pipeline = pipeline
        self.catalog = catalog
        self.command_mode = command_mode

    # ------------------------------------------------------------------
    # /print
    # ------------------------------------------------------------------

    def handle_command(
        self,
        channel_id: str,
        user_id: str,
        text: str,
        trigger_id: str,
        respond: Respond,
    ) -> None:
        """Handle ``/print [file id | url]``."""
        logger.info(
            "Print command received from %s in %s (has text: %s)",
            user_id, channel_id, bool((text or "").strip()),
        )

        if (text or "").strip():
            self._handle_inline_reference(channel_id, user_id, text, respond)
            return

        if self.command_mode == COMMAND_MODE_WAITLIST:
            self.coordinator.register_wait(channel_id, user_id, respond)
            respond(text=messages.MSG_WAITING)
            return

        try:
            self._open_print_modal(trigger_id)
            logger.info("Print modal shown to %s in %s", user_id, channel_id)
        except UpstreamError:
            logger.exception("Failed to show print modal for %s", user_id)
            self.coordinator.register_wait(channel_id, user_id, respond)
            respond(text=messages.MSG_FORM_UNAVAILABLE)

    def _handle_inline_reference(
        self, channel_id: str, user_id: str, text: str, respond: Respond
    ) -> None:
        try:
            reference = parse_file_reference(text)
            respond(text=messages.MSG_PROCESSING)
            if reference.file_ref is not None:
                file_ref = reference.file_ref
            else:
                file_ref = self.chat.resolve_file_metadata(reference.file_id)
        except ValidationError as exc:
            respond(text=messages.invalid_input_text(exc.message))
            return
        except UpstreamError:
            logger.exception("Could not resolve file reference %r", text)
            respond(text=messages.MSG_PROCESSING_FAILED)
            return

        self._store_and_prompt(file_ref, channel_id, user_id, respond)

    def _open_print_modal(self, trigger_id: str) -> None:
        view = messages.build_print_request_modal(
            projects=self.catalog.list_projects(),
            printers=self.catalog.list_printers(),
            materials=self.catalog.list_materials(),
        )
        self.chat.open_form(trigger_id, view)

    # ------------------------------------------------------------------
    # Modal interactions
    # ------------------------------------------------------------------

    def handle_printer_selected(self, view: Mapping[str, Any], printer: str) -> None:
        """Refresh the materials dropdown for the chosen printer."""
        if not printer or printer == messages.NONE_VALUE:
            return
        updated = messages.replace_material_options(view, self.catalog.list_materials(printer))
        try:
            self.chat.update_form(view.get("id", ""), updated)
        except UpstreamError:
            logger.exception("Failed to update materials for printer %s", printer)

    def handle_form_submission(
        self,
        user_id: str,
        selections: Mapping[str, str],
        close_form: Callable[..., Any],
    ) -> Optional[str]:
        """Validate the modal and create an AwaitingFile submission.

        ``close_form(errors=...)`` keeps the modal open with inline errors;
        ``close_form()`` closes it. Returns the submission id on success.
        """
        resolved = dict(selections)
        custom = (resolved.pop("custom_material", "") or "").strip()
        # Project, printer and material are reported before the custom material.
        try:
            resolved = validate_required(resolved, FORM_SELECTION_FIELDS)
        except ValidationError as exc:
            close_form(errors=messages.modal_errors({exc.field: exc.message}))
            return None

        if resolved["material"] == messages.OTHER_MATERIAL:
            if not custom:
                close_form(errors=messages.modal_errors({
                    "custom_material":
                        'Please specify the custom material name when "Other" is selected.',
                }))
                return None
            resolved["material"] = custom

        try:
            submission_id = self.coordinator.create_submission(user_id, resolved)
        except ValidationError as exc:
            close_form(errors=messages.modal_errors({exc.field: exc.message}))
            return None

        close_form()
        submission = self.coordinator.get_submission(submission_id)
        try:
            self.chat.post_message(
                user_id, messages.submission_received_text(submission.selections)
            )
        except UpstreamError:
            logger.exception("Could not confirm submission %s to %s", submission_id, user_id)
        return submission_id

    # ------------------------------------------------------------------
    # file_shared
    # ------------------------------------------------------------------

    def handle_file_shared(self, event: Mapping[str, Any]) -> None:
        """Route a file upload to the request it completes, if any."""
        file_id = event.get("file_id") or (event.get("file") or {}).get("id")
        if not file_id:
            return
        logger.info("File shared event received: %s", file_id)

        try:
            file_ref = self.chat.resolve_file_metadata(file_id)
        except (UpstreamError, ValidationError):
            logger.exception("Could not resolve shared file %s", file_id)
            return

        channel_id = (file_ref.channels[0] if file_ref.channels else "") \
            or event.get("channel_id") or ""
        user_id = file_ref.user or event.get("user_id") or ""
        if not user_id:
            return

        submission = self._claim_submission(user_id, file_ref)
        if submission is not None:
            self._complete_print_request(submission, file_ref, channel_id)
            return

        if not channel_id:
            return

        match = self.coordinator.resolve_wait(channel_id, user_id)
        if match.outcome is WaitOutcome.MISSING:
            return

        if match.outcome is WaitOutcome.EXPIRED:
            self._safe_ephemeral(channel_id, user_id, messages.MSG_WAIT_EXPIRED)
            return

        try:
            match.entry.on_match(text=messages.MSG_WAIT_MATCHED)
        except Exception:
            logger.warning("Deferred reply for %s failed", user_id, exc_info=True)

        def respond(text: str = "", blocks: Optional[list] = None, **_: Any) -> None:
            self.chat.send_ephemeral(channel_id, user_id, text, blocks=blocks)

        self._store_and_prompt(file_ref, channel_id, user_id, respond)

    def _claim_submission(self, user_id: str, file_ref: FileRef) -> Optional[PendingSubmission]:
        submission = self.coordinator.find_awaiting_submission(user_id)
        if submission is None:
            return None
        try:
            return self.coordinator.complete_submission(submission.id, file_ref)
        except StateError:
            logger.info("Submission %s was completed by another delivery", submission.id)
            return None

    def _complete_print_request(
        self, submission: PendingSubmission, file_ref: FileRef, channel_id: str
    ) -> None:
        user_id = submission.requester_id
        selections = submission.selections
        started = time.monotonic()

        self._safe_post(channel_id or user_id, messages.MSG_REQUEST_RECEIVED)
        try:
            stored = self.pipeline.store(file_ref)
            submitter = self.pipeline.lookup_submitter(user_id, file_ref)
            self.pipeline.log(SubmissionRow(
                user=submitter.display_name,
                file_name=file_ref.name,
                project=selections["project"],
                drive_link=stored.view_url,
                notes=selections["notes"],
                printer=selections["printer"],
                material=selections["material"],
                slack_link=submitter.permalink,
            ))
        except ValidationError as exc:
            self._safe_post(user_id, messages.validation_text(exc.message))
            return
        except PrintBotError:
            logger.exception("Print request %s processing failed", submission.id)
            self._safe_post(user_id, messages.MSG_REQUEST_FAILED)
            return

        logger.info("Print request %s completed in %dms", submission.id, _elapsed_ms(started))
        self._safe_post(user_id, messages.print_request_success_text(
            selections, file_ref.name, stored.view_url, _elapsed_ms(started)
        ))

    # ------------------------------------------------------------------
    # Upload-first path
    # ------------------------------------------------------------------

    def _store_and_prompt(
        self, file_ref: FileRef, channel_id: str, user_id: str, respond: Respond
    ) -> Optional[str]:
        """Upload right away, then ask which project the file belongs to."""
        started = time.monotonic()
        try:
            stored = self.pipeline.store(file_ref)
            submitter = self.pipeline.lookup_submitter(user_id, file_ref)
            projects = self.catalog.list_projects()
        except ValidationError as exc:
            respond(text=messages.invalid_input_text(exc.message))
            return None
        except PrintBotError:
            logger.exception("File processing failed for %s", file_ref.name)
            respond(text=messages.MSG_PROCESSING_FAILED)
            return None

        elapsed = _elapsed_ms(started)
        if not projects:
            respond(text=messages.no_projects_text(file_ref.name, stored.view_url, elapsed))
            return None

        upload_id = self.coordinator.create_pending_upload(
            source_file=file_ref,
            stored_file=stored,
            submitter_display_name=submitter.display_name,
            channel_id=channel_id,
            requester_id=user_id,
        )
        respond(
            text=messages.uploaded_text(file_ref.name, stored.view_url, elapsed),
            blocks=messages.build_file_log_prompt(
                file_ref.name, stored.view_url, elapsed, projects, upload_id
            ),
        )
        logger.info("File %s stored, awaiting project selection (%s)", file_ref.name, upload_id)
        return upload_id

    def handle_upload_confirmed(
        self, upload_id: str, selections: Mapping[str, str], respond: Respond
    ) -> None:
        try:
            upload = self.coordinator.confirm_pending_upload(upload_id, selections)
        except ValidationError:
            respond(text=messages.MSG_SELECT_PROJECT)
            return
        except (ExpiredError, StateError):
            respond(text=messages.MSG_UPLOAD_EXPIRED)
            return

        project = upload.selections["project"]
        notes = upload.selections.get("notes", "")
        try:
            self.pipeline.log(SubmissionRow(
                user=upload.submitter_display_name,
                file_name=upload.source_file.name,
                project=project,
                drive_link=upload.stored_file.view_url,
                notes=notes,
                slack_link=upload.source_file.permalink,
            ))
        except UpstreamError:
            logger.exception("File log submission failed for %s", upload_id)
            self.coordinator.restore_pending_upload(upload)
            respond(text=messages.MSG_LOG_FAILED)
            return

        respond(text=messages.file_logged_text(project, notes, upload.stored_file.view_url))

    def handle_upload_cancelled(self, upload_id: str, respond: Respond) -> None:
        try:
            self.coordinator.cancel_pending_upload(upload_id)
        except (ExpiredError, StateError):
            logger.info("Cancel for finished pending upload %s ignored", upload_id)
        respond(text=messages.MSG_LOG_CANCELLED)

    # ------------------------------------------------------------------
    # Reply helpers
    # ------------------------------------------------------------------

    def _safe_post(self, channel: str, text: str) -> None:
        try:
            self.chat.post_message(channel, text)
        except UpstreamError:
            logger.exception("Failed to post message to %s", channel)

    def _safe_ephemeral(self, channel_id: str, user_id: str, text: str) -> None:
        try:
            self.chat.send_ephemeral(channel_id, user_id, text)
        except UpstreamError:
            logger.exception("Failed to send ephemeral message to %s", user_id)
