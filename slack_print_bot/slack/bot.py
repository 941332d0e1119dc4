"""Slack bot: bolt listener bindings for the print request flow.

WHY: Slack delivers one print request as several unrelated payloads: the
/print command, modal submission and dropdown actions, the file_shared
event, and the Submit/Cancel buttons on the upload prompt. This module
turns each payload into a call on the SubmissionRouter and nothing more.

HOW: PrintBotHandlers holds the router; its methods are registered as bolt
listeners (bolt skips the ``self`` argument when injecting). create_app()
builds the App with every listener registered. The same App serves both
HTTP mode (mounted in server/app.py) and Socket Mode (main() below).

RULES:
- All Slack actions must be ack()'d within 3 seconds; ack() comes first,
  except for the modal submission whose ack carries validation errors
- Listeners never raise: unexpected errors are logged and the trigger dropped
- Dropdown and notes actions are acknowledged with no other effect
- Runnable as: python -m slack_print_bot --socket
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler
from slack_sdk import WebClient

from slack_print_bot.core.router import SubmissionRouter
from slack_print_bot.core.state import SubmissionCoordinator
from slack_print_bot.slack.messages import (
    ACTION_ADD_NOTES,
    ACTION_CANCEL_FILE_LOG,
    ACTION_OTHER_MATERIAL,
    ACTION_SELECT_MATERIALS,
    ACTION_SELECT_PRINTER,
    ACTION_SELECT_PROJECT,
    ACTION_SUBMIT_FILE_LOG,
    MODAL_CALLBACK_ID,
    extract_file_log_selection,
    extract_print_request,
)

logger = logging.getLogger(__name__)

PRINT_COMMAND = "/print"


def _action_value(body: Dict[str, Any]) -> str:
    actions = body.get("actions") or [{}]
    return actions[0].get("value") or ""


def _selected_option_value(body: Dict[str, Any]) -> str:
    actions = body.get("actions") or [{}]
    return (actions[0].get("selected_option") or {}).get("value") or ""


def _state_values(body: Dict[str, Any]) -> Dict[str, Any]:
    return (body.get("state") or {}).get("values") or {}


class PrintBotHandlers:
    """Bolt listeners that delegate to a SubmissionRouter."""

    def __init__(self, router: SubmissionRouter) -> None:
        self.router = router

    # ------------------------------------------------------------------
    # Command and events
    # ------------------------------------------------------------------

    def handle_print_command(self, ack: Any, command: Dict[str, Any], respond: Any) -> None:
        ack()
        try:
            self.router.handle_command(
                command.get("channel_id", ""),
                command.get("user_id", ""),
                command.get("text", ""),
                command.get("trigger_id", ""),
                respond,
            )
        except Exception:
            logger.exception("Print command failed")

    def handle_file_shared(self, event: Dict[str, Any]) -> None:
        try:
            self.router.handle_file_shared(event)
        except Exception:
            logger.exception("file_shared handling failed for %s", event.get("file_id"))

    # ------------------------------------------------------------------
    # Modal
    # ------------------------------------------------------------------

    def handle_modal_submit(self, ack: Any, body: Dict[str, Any], view: Dict[str, Any]) -> None:
        """Validate the print request modal; errors keep it open."""
        user_id = (body.get("user") or {}).get("id", "")
        selections = extract_print_request((view.get("state") or {}).get("values") or {})
        acked = []

        def close_form(errors: Optional[Dict[str, str]] = None) -> None:
            acked.append(True)
            if errors:
                ack(response_action="errors", errors=errors)
            else:
                ack()

        try:
            self.router.handle_form_submission(user_id, selections, close_form)
        except Exception:
            logger.exception("Print request modal submission failed for %s", user_id)
            if not acked:
                ack()

    def handle_printer_select(self, ack: Any, body: Dict[str, Any]) -> None:
        ack()
        try:
            self.router.handle_printer_selected(body.get("view") or {}, _selected_option_value(body))
        except Exception:
            logger.exception("Materials refresh failed")

    def handle_noop(self, ack: Any) -> None:
        ack()

    # ------------------------------------------------------------------
    # Upload prompt buttons
    # ------------------------------------------------------------------

    def handle_submit_file_log(self, ack: Any, body: Dict[str, Any], respond: Any) -> None:
        ack()
        upload_id = _action_value(body)
        try:
            self.router.handle_upload_confirmed(
                upload_id,
                extract_file_log_selection(_state_values(body)),
                _replacing(respond),
            )
        except Exception:
            logger.exception("File log submission failed for %s", upload_id)

    def handle_cancel_file_log(self, ack: Any, body: Dict[str, Any], respond: Any) -> None:
        ack()
        upload_id = _action_value(body)
        try:
            self.router.handle_upload_cancelled(upload_id, _replacing(respond))
        except Exception:
            logger.exception("File log cancel failed for %s", upload_id)


def _replacing(respond: Any) -> Callable[..., Any]:
    """Replies to button clicks overwrite the prompt they came from."""

    def reply(**kwargs: Any) -> Any:
        kwargs.setdefault("replace_original", True)
        return respond(**kwargs)

    return reply


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def register_handlers(app: App, handlers: PrintBotHandlers) -> App:
    app.command(PRINT_COMMAND)(handlers.handle_print_command)
    app.event("file_shared")(handlers.handle_file_shared)

    app.view(MODAL_CALLBACK_ID)(handlers.handle_modal_submit)
    app.action(ACTION_SELECT_PRINTER)(handlers.handle_printer_select)
    for action_id in (
        ACTION_SELECT_PROJECT,
        ACTION_SELECT_MATERIALS,
        ACTION_OTHER_MATERIAL,
        ACTION_ADD_NOTES,
    ):
        app.action(action_id)(handlers.handle_noop)

    app.action(ACTION_SUBMIT_FILE_LOG)(handlers.handle_submit_file_log)
    app.action(ACTION_CANCEL_FILE_LOG)(handlers.handle_cancel_file_log)
    return app


def create_app(
    router: SubmissionRouter,
    client: WebClient,
    signing_secret: Optional[str] = None,
    token_verification_enabled: bool = True,
) -> App:
    """Create the bolt App with every print-bot listener registered.

    WHY: Factory function so tests can build an App around a mocked router
    without talking to Slack (token_verification_enabled=False skips
    auth.test).
    """
    app = App(
        client=client,
        signing_secret=signing_secret,
        token_verification_enabled=token_verification_enabled,
    )
    return register_handlers(app, PrintBotHandlers(router))


def start_sweeper(
    coordinator: SubmissionCoordinator,
    interval: float,
    stop: Optional[threading.Event] = None,
) -> threading.Thread:
    """Sweep expired state every ``interval`` seconds on a daemon thread.

    Socket Mode has no FastAPI lifespan, so this takes the place of the
    server's periodic sweep task.
    """
    stop = stop or threading.Event()

    def loop() -> None:
        while not stop.wait(interval):
            try:
                removed = coordinator.sweep()
            except Exception:
                logger.exception("State sweep failed")
                continue
            if any(removed.values()):
                logger.info("Swept expired state: %s", removed)

    thread = threading.Thread(target=loop, name="state-sweeper", daemon=True)
    thread.start()
    return thread


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Start the bot in Socket Mode.

    RULES:
    - Requires SLACK_APP_TOKEN in addition to the usual settings
    - Blocks on SocketModeHandler.start()
    """
    from slack_print_bot.config import SWEEP_INTERVAL_S, configure_logging, load_settings
    from slack_print_bot.server.app import build_components

    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.slack_app_token:
        raise ValueError("SLACK_APP_TOKEN environment variable is required for Socket Mode")

    components = build_components(settings)
    components.check_connections()
    start_sweeper(components.coordinator, SWEEP_INTERVAL_S)

    logger.info("Starting print bot in Socket Mode (command mode: %s)", settings.command_mode)
    handler = SocketModeHandler(components.app, settings.slack_app_token)
    handler.start()


if __name__ == "__main__":
    main()
