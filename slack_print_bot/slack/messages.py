"""Message templates, Block Kit builders, and form parsers for the print bot.

WHY: The bot sends a print request modal, an ephemeral "pick a project"
prompt after an upload, and a handful of status replies. Centralizing the
builders and the matching parsers keeps the router and bolt bindings free
of Block Kit nesting.

HOW: Builders return plain dicts ready for views_open/views_update or
chat_postEphemeral. Parsers walk ``state.values`` and return flat
selection dicts keyed by field name (project, printer, material,
custom_material, notes).

RULES:
- action_id/block_id values must match the registrations in slack/bot.py
- Option text and values are truncated to OPTION_MAX_CHARS (Slack caps at 75)
- A static_select holds at most 100 options: the modal splits projects into
  several dropdowns, the upload prompt uses option groups
- Modal selects live in optional input blocks so validation errors can be
  attached to them with response_action="errors"
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MODAL_CALLBACK_ID = "print_request_modal"

ACTION_SELECT_PROJECT = "select_project"
ACTION_SELECT_PRINTER = "select_printer"
ACTION_SELECT_MATERIALS = "select_materials"
ACTION_OTHER_MATERIAL = "other_material_input"
ACTION_ADD_NOTES = "add_notes"
ACTION_SUBMIT_FILE_LOG = "submit_file_log"
ACTION_CANCEL_FILE_LOG = "cancel_file_log"

PROJECT_BLOCK_PREFIX = "project_section_"
PRINTER_BLOCK = "printer_section"
MATERIALS_BLOCK = "materials_section"
OTHER_MATERIAL_BLOCK = "other_material_section"
NOTES_BLOCK = "notes_section"
FILE_LOG_PROJECT_BLOCK = "project_section"

# Where validation errors are displayed in the modal
FIELD_BLOCKS = {
    "project": PROJECT_BLOCK_PREFIX + "1",
    "printer": PRINTER_BLOCK,
    "material": MATERIALS_BLOCK,
    "custom_material": OTHER_MATERIAL_BLOCK,
    "notes": NOTES_BLOCK,
}

OPTION_MAX_CHARS = 65
OPTIONS_PER_SELECT = 100
NONE_VALUE = "none"
OTHER_MATERIAL = "Other"

MSG_PROCESSING = "Processing your file…"
MSG_FORM_UNAVAILABLE = (
    "⚠️ Could not load the print form. Please try again in a moment.\n\n"
    "If the problem persists, you can:\n"
    "• Upload your file directly and I'll process it\n"
    "• Use `/print <file_id>` with a Slack file ID\n"
    "• Contact an administrator"
)
MSG_WAITING = "Upload your file in this channel within 2 minutes and I'll send it to Drive."
MSG_WAIT_MATCHED = "Got it — sending your file now…"
MSG_WAIT_EXPIRED = "Sorry, the 2-minute window expired. Use /print again."
MSG_REQUEST_RECEIVED = "Got it — processing your print request with the uploaded file…"
MSG_PROCESSING_FAILED = "❌ Processing failed. Please try again in a moment or contact an administrator."
MSG_REQUEST_FAILED = "❌ Print request failed. Please submit /print again or contact an administrator."
MSG_UPLOAD_EXPIRED = "❌ File data expired. Please upload the file again."
MSG_LOG_FAILED = "❌ Error logging file. Please try again in a moment."
MSG_SELECT_PROJECT = "❌ Please select a project before submitting."
MSG_LOG_CANCELLED = "❌ File logging cancelled."


def _plain(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text}


def _mrkdwn(text: str) -> Dict[str, Any]:
    return {"type": "mrkdwn", "text": text}


def truncate_option(text: str, limit: int = OPTION_MAX_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_options(values: Sequence[str]) -> List[Dict[str, Any]]:
    """Static select options; text and value are both truncated."""
    return [
        {"text": _plain(truncate_option(value)), "value": truncate_option(value)}
        for value in values
    ]


def _placeholder_options(label: str) -> List[Dict[str, Any]]:
    return [{"text": _plain(label), "value": NONE_VALUE}]


# ---------------------------------------------------------------------------
# Print request modal
# ---------------------------------------------------------------------------


def _project_dropdowns(projects: Sequence[str]) -> List[Dict[str, Any]]:
    blocks = []
    for start in range(0, len(projects), OPTIONS_PER_SELECT):
        batch = projects[start:start + OPTIONS_PER_SELECT]
        number = start // OPTIONS_PER_SELECT + 1
        label = "Projects {}-{}".format(start + 1, start + len(batch))
        blocks.append({
            "type": "input",
            "block_id": "{}{}".format(PROJECT_BLOCK_PREFIX, number),
            "optional": True,
            "label": _plain(label),
            "element": {
                "type": "static_select",
                "action_id": ACTION_SELECT_PROJECT,
                "placeholder": _plain(truncate_option("Choose from {}...".format(label))),
                "options": build_options(batch),
            },
        })

    if not blocks:
        blocks.append({
            "type": "input",
            "block_id": PROJECT_BLOCK_PREFIX + "1",
            "optional": True,
            "label": _plain("No Projects"),
            "element": {
                "type": "static_select",
                "action_id": ACTION_SELECT_PROJECT,
                "placeholder": _plain("Choose a project..."),
                "options": _placeholder_options("No projects available"),
            },
        })
    return blocks


def _materials_block(materials: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "input",
        "block_id": MATERIALS_BLOCK,
        "optional": True,
        "label": _plain("Select Materials"),
        "element": {
            "type": "static_select",
            "action_id": ACTION_SELECT_MATERIALS,
            "placeholder": _plain("Choose materials..."),
            "options": build_options(materials) if materials
            else _placeholder_options("No materials available"),
        },
    }


def build_print_request_modal(
    projects: Sequence[str],
    printers: Sequence[str],
    materials: Sequence[str],
) -> Dict[str, Any]:
    """Build the print request modal view.

    RULES:
    - One project dropdown per 100 projects, block ids project_section_N
    - The printer select dispatches block_actions so materials can follow it
    - Notes are required by validation, not by Slack
    """
    printer_options = build_options(printers) if printers \
        else _placeholder_options("No printers available")

    blocks = [
        {"type": "section", "text": _mrkdwn("Please fill out the print request form below:")},
        {"type": "divider"},
        {
            "type": "section",
            "text": _mrkdwn(
                "*Select Project:*\n_All {} projects organized in dropdowns below. "
                "Choose from any dropdown._".format(len(projects))
            ),
        },
    ]
    blocks.extend(_project_dropdowns(projects))
    blocks.extend([
        {
            "type": "input",
            "block_id": PRINTER_BLOCK,
            "optional": True,
            "dispatch_action": True,
            "label": _plain("Select Printer"),
            "element": {
                "type": "static_select",
                "action_id": ACTION_SELECT_PRINTER,
                "placeholder": _plain("Choose a printer..."),
                "options": printer_options,
            },
        },
        _materials_block(materials),
        {
            "type": "input",
            "block_id": OTHER_MATERIAL_BLOCK,
            "optional": True,
            "label": _plain('Custom Material (if "Other" selected)'),
            "element": {
                "type": "plain_text_input",
                "action_id": ACTION_OTHER_MATERIAL,
                "placeholder": _plain("Enter custom material name..."),
            },
        },
        {
            "type": "input",
            "block_id": NOTES_BLOCK,
            "optional": True,
            "label": _plain("Add Notes"),
            "element": {
                "type": "plain_text_input",
                "action_id": ACTION_ADD_NOTES,
                "multiline": True,
                "placeholder": _plain("Enter any notes about this print request..."),
            },
        },
        {
            "type": "section",
            "text": _mrkdwn(
                "*📁 File Upload:*\nAfter submitting this form, please upload your 3D model "
                "file directly in this channel. The bot will automatically process it and "
                "link it to your print request."
            ),
        },
    ])

    return {
        "type": "modal",
        "callback_id": MODAL_CALLBACK_ID,
        "title": _plain("Print Request"),
        "submit": _plain("Submit Print Request"),
        "close": _plain("Cancel"),
        "blocks": blocks,
    }


def replace_material_options(view: Mapping[str, Any], materials: Sequence[str]) -> Dict[str, Any]:
    """Return a views_update payload with the materials dropdown replaced.

    Only keys accepted by views.update are copied from the live view.
    """
    blocks = []
    for block in view.get("blocks", []):
        if block.get("block_id") == MATERIALS_BLOCK:
            block = _materials_block(materials)
        blocks.append(block)

    updated = {
        "type": "modal",
        "callback_id": view.get("callback_id", MODAL_CALLBACK_ID),
        "title": view.get("title", _plain("Print Request")),
        "submit": view.get("submit", _plain("Submit Print Request")),
        "close": view.get("close", _plain("Cancel")),
        "blocks": blocks,
    }
    if view.get("private_metadata"):
        updated["private_metadata"] = view["private_metadata"]
    return updated


def _selected_value(block_values: Mapping[str, Any], action_id: str) -> str:
    selected = (block_values.get(action_id) or {}).get("selected_option") or {}
    return selected.get("value") or ""


def _input_value(block_values: Mapping[str, Any], action_id: str) -> str:
    return (block_values.get(action_id) or {}).get("value") or ""


def extract_print_request(values: Mapping[str, Any]) -> Dict[str, str]:
    """Flatten modal state values into form selections.

    The first project dropdown with a real selection wins.
    """
    project = ""
    for block_id, block_values in values.items():
        if not block_id.startswith(PROJECT_BLOCK_PREFIX):
            continue
        value = _selected_value(block_values, ACTION_SELECT_PROJECT)
        if value and value != NONE_VALUE:
            project = value
            break

    return {
        "project": project,
        "printer": _selected_value(values.get(PRINTER_BLOCK, {}), ACTION_SELECT_PRINTER),
        "material": _selected_value(values.get(MATERIALS_BLOCK, {}), ACTION_SELECT_MATERIALS),
        "custom_material": _input_value(
            values.get(OTHER_MATERIAL_BLOCK, {}), ACTION_OTHER_MATERIAL
        ),
        "notes": _input_value(values.get(NOTES_BLOCK, {}), ACTION_ADD_NOTES),
    }


def modal_errors(errors: Mapping[str, str]) -> Dict[str, str]:
    """Map field-level errors onto modal block ids."""
    return {FIELD_BLOCKS.get(field, NOTES_BLOCK): message for field, message in errors.items()}


# ---------------------------------------------------------------------------
# Upload-first prompt
# ---------------------------------------------------------------------------


def _project_select(projects: Sequence[str]) -> Dict[str, Any]:
    element = {
        "type": "static_select",
        "action_id": ACTION_SELECT_PROJECT,
        "placeholder": _plain("Choose a project..."),
    }  # type: Dict[str, Any]
    if len(projects) <= OPTIONS_PER_SELECT:
        element["options"] = build_options(projects)
        return element

    groups = []
    for start in range(0, len(projects), OPTIONS_PER_SELECT):
        batch = projects[start:start + OPTIONS_PER_SELECT]
        groups.append({
            "label": _plain("Projects {}-{}".format(start + 1, start + len(batch))),
            "options": build_options(batch),
        })
    element["option_groups"] = groups
    return element


def uploaded_text(file_name: str, drive_link: str, elapsed_ms: int) -> str:
    return "✅ Uploaded *{}* to Drive!\n• Drive: {}\n• Processing time: {}ms".format(
        file_name, drive_link, elapsed_ms
    )


def build_file_log_prompt(
    file_name: str,
    drive_link: str,
    elapsed_ms: int,
    projects: Sequence[str],
    upload_id: str,
) -> List[Dict[str, Any]]:
    """Ephemeral blocks asking which project an uploaded file belongs to.

    The Submit/Cancel buttons carry the pending upload id as their value.
    """
    header = "{}\n\nPlease complete the form below to log this file:".format(
        uploaded_text(file_name, drive_link, elapsed_ms)
    )
    return [
        {"type": "section", "text": _mrkdwn(header)},
        {"type": "divider"},
        {
            "type": "section",
            "block_id": FILE_LOG_PROJECT_BLOCK,
            "text": _mrkdwn("*Select Project:*"),
            "accessory": _project_select(projects),
        },
        {
            "type": "input",
            "block_id": NOTES_BLOCK,
            "optional": True,
            "label": _plain("Add Notes (optional):"),
            "element": {
                "type": "plain_text_input",
                "action_id": ACTION_ADD_NOTES,
                "multiline": True,
                "placeholder": _plain("Enter any notes about this file..."),
            },
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": _plain("Submit to Log"),
                    "style": "primary",
                    "action_id": ACTION_SUBMIT_FILE_LOG,
                    "value": upload_id,
                },
                {
                    "type": "button",
                    "text": _plain("Cancel"),
                    "action_id": ACTION_CANCEL_FILE_LOG,
                    "value": upload_id,
                },
            ],
        },
    ]


def extract_file_log_selection(values: Mapping[str, Any]) -> Dict[str, str]:
    return {
        "project": _selected_value(values.get(FILE_LOG_PROJECT_BLOCK, {}), ACTION_SELECT_PROJECT),
        "notes": _input_value(values.get(NOTES_BLOCK, {}), ACTION_ADD_NOTES),
    }


# ---------------------------------------------------------------------------
# Status texts
# ---------------------------------------------------------------------------


def request_details(selections: Mapping[str, str]) -> str:
    return "• Project: *{}*\n• Printer: *{}*\n• Materials: *{}*\n• Notes: {}".format(
        selections.get("project", ""),
        selections.get("printer", ""),
        selections.get("material", ""),
        selections.get("notes", ""),
    )


def submission_received_text(selections: Mapping[str, str]) -> str:
    return (
        "✅ Print request submitted!\n\n*Details:*\n{}\n\n"
        "📁 *Please upload your 3D model file in this channel to complete your print request.*"
    ).format(request_details(selections))


def print_request_success_text(
    selections: Mapping[str, str],
    file_name: str,
    drive_link: str,
    elapsed_ms: int,
) -> str:
    return (
        "✅ Print request submitted successfully!\n\n*Details:*\n{}\n"
        "• File: *{}*\n• Drive: {}\n• Processing time: {}ms"
    ).format(request_details(selections), file_name, drive_link, elapsed_ms)


def no_projects_text(file_name: str, drive_link: str, elapsed_ms: int) -> str:
    return "{}\n\n⚠️ Could not load project list. Please update the project manually in the sheet.".format(
        uploaded_text(file_name, drive_link, elapsed_ms)
    )


def file_logged_text(project: str, notes: str, drive_link: str) -> str:
    return "✅ File logged successfully!\n• Project: *{}*\n• Notes: {}\n• Drive: {}".format(
        project, notes or "None", drive_link
    )


def invalid_input_text(message: str) -> str:
    return "❌ Could not process that input: {}".format(message)


def validation_text(message: Optional[str]) -> str:
    return "❌ {}".format(message) if message else MSG_SELECT_PROJECT
