"""Tests for the inbound event router, including end-to-end scenarios.

WHY: The router is where a /print command, a modal submission and a
file_shared event become one print request. Mistakes here show up as
double-logged rows, files silently dropped, or users left without a reply.

HOW: A real SubmissionCoordinator (FakeClock), real UploadPipeline and
PrintCatalog are wired to mocked Slack, Drive and Sheets collaborators.
Tests then replay Slack triggers in order and assert on the mocks:
  - TestScenarioFormFirst: command -> modal -> upload -> duplicate delivery
  - TestScenarioWaitlist: upload at T+90 s and at T+130 s
  - TestScenarioMissingNotes: validation keeps the modal open
  - TestInlineReference / TestUploadPrompt: the upload-first path

RULES:
- Slack, Drive and Sheets are MagicMocks; nothing leaves the process
- Sheet rows are asserted through sheet.append_row calls
"""

from __future__ import annotations

import re
from unittest.mock import MagicMock

import pytest

from conftest import CHANNEL_ID, FILE_ID, PROJECTS, USER_ID, appended_rows, full_selections

from slack_print_bot.core.errors import UpstreamError
from slack_print_bot.core.files import USAGE_HINT
from slack_print_bot.core.router import COMMAND_MODE_WAITLIST, SubmissionRouter
from slack_print_bot.core.models import SubmissionStatus
from slack_print_bot.slack import messages


def _file_shared_event(file_id: str = FILE_ID) -> dict:
    return {"type": "file_shared", "file_id": file_id, "user_id": USER_ID, "channel_id": CHANNEL_ID}


def _prompt_upload_id(blocks) -> str:
    actions = [b for b in blocks if b["type"] == "actions"][0]
    return actions["elements"][0]["value"]


@pytest.fixture
def waitlist_router(coordinator, chat, pipeline, catalog) -> SubmissionRouter:
    return SubmissionRouter(coordinator, chat, pipeline, catalog, command_mode=COMMAND_MODE_WAITLIST)


class TestScenarioFormFirst:
    """Bare /print, modal submitted, file uploaded, event redelivered."""

    def test_full_flow_logs_exactly_one_row(self, router, coordinator, chat, storage, sheet):
        respond = MagicMock()
        close_form = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, "", "trigger-1", respond)
        chat.open_form.assert_called_once()
        assert chat.open_form.call_args.args[0] == "trigger-1"

        submission_id = router.handle_form_submission(USER_ID, full_selections(), close_form)
        close_form.assert_called_once_with()
        assert coordinator.find_awaiting_submission(USER_ID).id == submission_id

        router.handle_file_shared(_file_shared_event())

        submission = coordinator.get_submission(submission_id)
        assert submission.status is SubmissionStatus.COMPLETED
        assert submission.attached_file.id == FILE_ID
        storage.upload_file.assert_called_once()

        rows = appended_rows(sheet)
        assert len(rows) == 1
        row = rows[0]
        assert row[0] == ""
        assert re.match(r"^\d{2}/\d{2}/\d{4}$", row[1])
        assert row[2:] == [
            "Ada Lovelace",
            "bracket.stl",
            "Alpha Rover",
            "https://drive.google.com/file/d/drive-file-1/view",
            "0.2mm layers, 20% infill",
            "Bambu",
            "PLA",
            "https://example.slack.com/files/U100/F0ABCDEF123/bracket.stl",
        ]

        # Slack retries the same event: no second row.
        router.handle_file_shared(_file_shared_event())
        assert len(appended_rows(sheet)) == 1
        assert storage.upload_file.call_count == 1

    def test_form_submission_confirms_by_dm(self, router, chat):
        router.handle_form_submission(USER_ID, full_selections(), MagicMock())

        channel, text = chat.post_message.call_args.args
        assert channel == USER_ID
        assert "Print request submitted" in text
        assert "Alpha Rover" in text

    def test_success_dm_after_upload(self, router, chat):
        router.handle_form_submission(USER_ID, full_selections(), MagicMock())
        chat.post_message.reset_mock()

        router.handle_file_shared(_file_shared_event())

        texts = [c.args[1] for c in chat.post_message.call_args_list]
        assert texts[0] == messages.MSG_REQUEST_RECEIVED
        assert "submitted successfully" in texts[-1]
        assert chat.post_message.call_args_list[-1].args[0] == USER_ID

    def test_drive_failure_reports_and_keeps_submission_completed(
        self, router, coordinator, chat, storage, sheet
    ):
        storage.upload_file.side_effect = UpstreamError("drive", "quota")
        submission_id = router.handle_form_submission(USER_ID, full_selections(), MagicMock())

        router.handle_file_shared(_file_shared_event())

        assert chat.post_message.call_args.args == (USER_ID, messages.MSG_REQUEST_FAILED)
        assert coordinator.get_submission(submission_id).status is SubmissionStatus.COMPLETED
        sheet.append_row.assert_not_called()

    def test_received_notice_failure_still_uploads_and_logs(self, router, chat, storage, sheet):
        router.handle_form_submission(USER_ID, full_selections(), MagicMock())

        def post_message(channel, text, blocks=None):
            if text == messages.MSG_REQUEST_RECEIVED:
                raise UpstreamError("slack", "not_in_channel")

        chat.post_message.side_effect = post_message

        router.handle_file_shared(_file_shared_event())

        storage.upload_file.assert_called_once()
        assert len(appended_rows(sheet)) == 1
        assert "submitted successfully" in chat.post_message.call_args.args[1]

    def test_oversized_file_reports_validation_message(self, router, chat, file_ref, storage):
        file_ref.size = 60 * 1024 * 1024
        router.handle_form_submission(USER_ID, full_selections(), MagicMock())

        router.handle_file_shared(_file_shared_event())

        storage.upload_file.assert_not_called()
        assert "exceeds maximum" in chat.post_message.call_args.args[1]

    def test_other_material_uses_custom_value(self, router, coordinator):
        selections = full_selections(material=messages.OTHER_MATERIAL)
        selections["custom_material"] = "PETG"

        submission_id = router.handle_form_submission(USER_ID, selections, MagicMock())

        stored = coordinator.get_submission(submission_id).selections
        assert stored["material"] == "PETG"
        assert "custom_material" not in stored

    def test_other_material_without_custom_value_keeps_form_open(self, router, coordinator):
        close_form = MagicMock()
        selections = full_selections(material=messages.OTHER_MATERIAL)

        result = router.handle_form_submission(USER_ID, selections, close_form)

        assert result is None
        errors = close_form.call_args.kwargs["errors"]
        assert list(errors) == [messages.OTHER_MATERIAL_BLOCK]
        assert coordinator.list_submissions() == []

    def test_missing_project_reported_before_custom_material(self, router, coordinator):
        close_form = MagicMock()
        selections = full_selections(project="", material=messages.OTHER_MATERIAL)

        router.handle_form_submission(USER_ID, selections, close_form)

        errors = close_form.call_args.kwargs["errors"]
        assert list(errors) == [messages.FIELD_BLOCKS["project"]]
        assert coordinator.list_submissions() == []

    def test_modal_failure_falls_back_to_waitlist(self, router, coordinator, chat):
        chat.open_form.side_effect = UpstreamError("slack", "expired_trigger_id")
        respond = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, "", "trigger-1", respond)

        respond.assert_called_once_with(text=messages.MSG_FORM_UNAVAILABLE)
        assert (CHANNEL_ID, USER_ID) in coordinator.waitlist

    def test_modal_lists_projects_from_catalog(self, router, chat):
        router.handle_command(CHANNEL_ID, USER_ID, "", "trigger-1", MagicMock())

        view = chat.open_form.call_args.args[1]
        options = [
            o["value"]
            for block in view["blocks"]
            if block.get("block_id", "").startswith(messages.PROJECT_BLOCK_PREFIX)
            for o in block["element"]["options"]
        ]
        assert options == PROJECTS


class TestScenarioWaitlist:
    """Bare /print in waitlist mode, then an upload 90 s or 130 s later."""

    def test_upload_within_window_is_processed(self, waitlist_router, coordinator, chat, storage, clock):
        respond = MagicMock()
        waitlist_router.handle_command(CHANNEL_ID, USER_ID, "", "trigger-1", respond)
        respond.assert_called_once_with(text=messages.MSG_WAITING)
        chat.open_form.assert_not_called()

        clock.advance(90)
        waitlist_router.handle_file_shared(_file_shared_event())

        assert respond.call_args_list[-1].kwargs == {"text": messages.MSG_WAIT_MATCHED}
        storage.upload_file.assert_called_once()
        channel, user, text = chat.send_ephemeral.call_args.args
        assert (channel, user) == (CHANNEL_ID, USER_ID)
        assert "Uploaded *bracket.stl*" in text
        assert chat.send_ephemeral.call_args.kwargs["blocks"]
        assert (CHANNEL_ID, USER_ID) not in coordinator.waitlist
        assert len(coordinator.uploads) == 1

    def test_upload_after_window_gets_expired_reply(self, waitlist_router, coordinator, chat, storage, clock):
        respond = MagicMock()
        waitlist_router.handle_command(CHANNEL_ID, USER_ID, "", "trigger-1", respond)

        clock.advance(130)
        waitlist_router.handle_file_shared(_file_shared_event())

        chat.send_ephemeral.assert_called_once_with(CHANNEL_ID, USER_ID, messages.MSG_WAIT_EXPIRED)
        storage.upload_file.assert_not_called()
        assert respond.call_count == 1
        assert (CHANNEL_ID, USER_ID) not in coordinator.waitlist

    def test_unmatched_upload_is_ignored(self, router, chat, storage):
        router.handle_file_shared(_file_shared_event())

        storage.upload_file.assert_not_called()
        chat.send_ephemeral.assert_not_called()
        chat.post_message.assert_not_called()

    def test_event_without_file_id_is_ignored(self, router, chat):
        router.handle_file_shared({"type": "file_shared"})
        chat.resolve_file_metadata.assert_not_called()

    def test_file_id_read_from_nested_file(self, router, chat):
        router.handle_file_shared({"file": {"id": FILE_ID}})
        chat.resolve_file_metadata.assert_called_once_with(FILE_ID)


class TestScenarioMissingNotes:
    def test_missing_notes_keeps_modal_open(self, router, coordinator, chat):
        close_form = MagicMock()

        result = router.handle_form_submission(USER_ID, full_selections(notes=""), close_form)

        assert result is None
        close_form.assert_called_once()
        errors = close_form.call_args.kwargs["errors"]
        assert list(errors) == [messages.NOTES_BLOCK]
        assert "notes" in errors[messages.NOTES_BLOCK]
        assert coordinator.list_submissions() == []
        chat.post_message.assert_not_called()


class TestInlineReference:
    def test_file_id_uploads_and_prompts_for_project(self, router, chat, storage, coordinator):
        respond = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, FILE_ID, "trigger-1", respond)

        assert respond.call_args_list[0].kwargs == {"text": messages.MSG_PROCESSING}
        chat.resolve_file_metadata.assert_called_once_with(FILE_ID)
        storage.upload_file.assert_called_once()
        final = respond.call_args_list[-1].kwargs
        upload_id = _prompt_upload_id(final["blocks"])
        assert upload_id in coordinator.uploads

    def test_url_uses_last_path_segment_as_name(self, router, chat, storage):
        respond = MagicMock()

        router.handle_command(
            CHANNEL_ID, USER_ID, "https://example.com/models/my%20part.stl", "t", respond
        )

        chat.resolve_file_metadata.assert_not_called()
        args = storage.upload_file.call_args.args
        assert args[1] == "my_part.stl"

    def test_unparseable_text_gets_usage_hint(self, router, storage):
        respond = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, "hello", "t", respond)

        respond.assert_called_once_with(text=messages.invalid_input_text(USAGE_HINT))
        storage.upload_file.assert_not_called()

    def test_metadata_failure_reports_processing_failed(self, router, chat):
        chat.resolve_file_metadata.side_effect = UpstreamError("slack", "file_not_found")
        respond = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, FILE_ID, "t", respond)

        assert respond.call_args.kwargs == {"text": messages.MSG_PROCESSING_FAILED}

    def test_no_projects_gives_drive_link_only(self, router, sheet, coordinator):
        sheet.list_column_values.return_value = []
        respond = MagicMock()

        router.handle_command(CHANNEL_ID, USER_ID, FILE_ID, "t", respond)

        text = respond.call_args.kwargs["text"]
        assert "update the project manually" in text
        assert len(coordinator.uploads) == 0


class TestUploadPrompt:
    def _prompt(self, router) -> str:
        respond = MagicMock()
        router.handle_command(CHANNEL_ID, USER_ID, FILE_ID, "t", respond)
        return _prompt_upload_id(respond.call_args.kwargs["blocks"])

    def test_confirm_logs_row_with_project_and_notes(self, router, sheet):
        upload_id = self._prompt(router)
        respond = MagicMock()

        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone", "notes": "rush"}, respond)

        row = appended_rows(sheet)[0]
        assert row[4] == "Beta Drone"
        assert row[6] == "rush"
        assert row[7:9] == ["", ""]
        assert "File logged successfully" in respond.call_args.kwargs["text"]

    def test_second_confirm_reports_expired(self, router, sheet):
        upload_id = self._prompt(router)
        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, MagicMock())
        respond = MagicMock()

        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, respond)

        respond.assert_called_once_with(text=messages.MSG_UPLOAD_EXPIRED)
        assert len(appended_rows(sheet)) == 1

    def test_confirm_after_five_minutes_reports_expired(self, router, clock, sheet):
        upload_id = self._prompt(router)
        clock.advance(301)
        respond = MagicMock()

        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, respond)

        respond.assert_called_once_with(text=messages.MSG_UPLOAD_EXPIRED)
        sheet.append_row.assert_not_called()

    def test_confirm_without_project_asks_again(self, router, coordinator):
        upload_id = self._prompt(router)
        respond = MagicMock()

        router.handle_upload_confirmed(upload_id, {"project": ""}, respond)

        respond.assert_called_once_with(text=messages.MSG_SELECT_PROJECT)
        assert upload_id in coordinator.uploads

    def test_sheet_failure_reports_log_failed(self, router, sheet):
        upload_id = self._prompt(router)
        sheet.append_row.side_effect = UpstreamError("sheets", "quota")
        respond = MagicMock()

        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, respond)

        respond.assert_called_once_with(text=messages.MSG_LOG_FAILED)

    def test_confirm_can_be_retried_after_sheet_failure(self, router, sheet, coordinator):
        upload_id = self._prompt(router)
        sheet.append_row.side_effect = UpstreamError("sheets", "quota")
        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, MagicMock())
        assert upload_id in coordinator.uploads

        sheet.append_row.side_effect = None
        respond = MagicMock()
        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, respond)

        assert "File logged successfully" in respond.call_args.kwargs["text"]
        assert upload_id not in coordinator.uploads
        assert sheet.append_row.call_count == 2

    def test_retry_keeps_original_deadline(self, router, sheet, clock):
        upload_id = self._prompt(router)
        clock.advance(200)
        sheet.append_row.side_effect = UpstreamError("sheets", "quota")
        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, MagicMock())

        sheet.append_row.side_effect = None
        clock.advance(101)
        respond = MagicMock()
        router.handle_upload_confirmed(upload_id, {"project": "Beta Drone"}, respond)

        respond.assert_called_once_with(text=messages.MSG_UPLOAD_EXPIRED)

    def test_cancel_removes_pending_upload(self, router, coordinator):
        upload_id = self._prompt(router)
        respond = MagicMock()

        router.handle_upload_cancelled(upload_id, respond)

        respond.assert_called_once_with(text=messages.MSG_LOG_CANCELLED)
        assert upload_id not in coordinator.uploads

    def test_cancel_unknown_upload_still_replies(self, router):
        respond = MagicMock()
        router.handle_upload_cancelled("file_0_gone", respond)
        respond.assert_called_once_with(text=messages.MSG_LOG_CANCELLED)


class TestPrinterSelected:
    def test_materials_follow_printer(self, router, chat):
        view = messages.build_print_request_modal(PROJECTS, ["Bambu", "Formlabs Form 3"], ["PLA"])
        view["id"] = "V123"

        router.handle_printer_selected(view, "Formlabs Form 3")

        view_id, updated = chat.update_form.call_args.args
        assert view_id == "V123"
        materials = [b for b in updated["blocks"] if b.get("block_id") == messages.MATERIALS_BLOCK][0]
        values = [o["value"] for o in materials["element"]["options"]]
        assert values[0] == "Tough 1500"
        assert "PLA" not in values

    def test_placeholder_printer_is_ignored(self, router, chat):
        router.handle_printer_selected({"id": "V123", "blocks": []}, messages.NONE_VALUE)
        chat.update_form.assert_not_called()


class TestConstruction:
    def test_unknown_command_mode_rejected(self, coordinator, chat, pipeline, catalog):
        with pytest.raises(ValueError):
            SubmissionRouter(coordinator, chat, pipeline, catalog, command_mode="chat")
