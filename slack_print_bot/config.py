"""Configuration: .env loading, settings validation, and catalog data.

WHY: The bot cannot do anything useful without its Slack tokens, sheet ids,
Drive folder and Google credentials. Validating all of them once at startup
gives one clear error listing everything that is missing, instead of a
failure on the first print request.

HOW: python-dotenv loads the .env file on import. load_settings() reads the
environment, collects every problem, and either raises ConfigError or
returns a frozen Settings. Printers and materials are plain module-level
data so they are easy to find and edit.

RULES:
- SLACK_BOT_TOKEN must start with "xoxb-"
- One of GOOGLE_CREDENTIALS_JSON / GOOGLE_APPLICATION_CREDENTIALS is required
- PROJECT_SHEET defaults to SHEET_ID
- LOG_LEVEL accepts error, warn, info, debug
- Never returns placeholder credentials
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Catalog data
# ---------------------------------------------------------------------------

PRINTERS: List[str] = ["Bambu", "Formlabs Form 3"]

PRINTER_MATERIALS: Dict[str, List[str]] = {
    "Bambu": ["PLA", "ABS", "ASA", "Other"],
    "Formlabs Form 3": [
        "Tough 1500",
        "Tough 2000",
        "Durable",
        "White",
        "Clear",
        "Elastic 80A",
        "Other",
    ],
}

ALL_MATERIALS: List[str] = [
    "PLA",
    "ABS",
    "ASA",
    "Tough 1500",
    "Tough 2000",
    "Durable",
    "White",
    "Clear",
    "Elastic 80A",
    "Other",
]

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

APP_ENVS = ("development", "production", "test")
COMMAND_MODES = ("form", "waitlist")
SUBMISSION_POLICIES = ("accumulate", "replace")

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

SWEEP_INTERVAL_S = 60.0


class ConfigError(ValueError):
    """Raised when required settings are missing or malformed."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = problems
        super().__init__(
            "Environment validation failed:\n" + "\n".join("- " + p for p in problems)
        )


@dataclass(frozen=True)
class Settings:
    slack_bot_token: str
    slack_signing_secret: str
    sheet_id: str
    drive_folder_id: str
    project_sheet_id: str
    google_credentials_json: Optional[str] = None
    google_application_credentials: Optional[str] = None
    slack_app_token: Optional[str] = None
    port: int = 3000
    app_env: str = "production"
    log_level: str = "info"
    command_mode: str = "form"
    submission_policy: str = "accumulate"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


def _clean(environ: Mapping[str, str], name: str) -> str:
    return (environ.get(name) or "").strip()


def _choice(environ: Mapping[str, str], name: str, allowed, default: str, problems: List[str]) -> str:
    value = _clean(environ, name).lower() or default
    if value not in allowed:
        problems.append("{} must be one of {} (got {!r})".format(name, ", ".join(allowed), value))
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Validate the environment and return Settings.

    Raises ConfigError listing every problem found.
    """
    environ = os.environ if environ is None else environ
    problems = []  # type: List[str]

    bot_token = _clean(environ, "SLACK_BOT_TOKEN")
    if not bot_token:
        problems.append("SLACK_BOT_TOKEN is required (starts with xoxb-)")
    elif not bot_token.startswith("xoxb-"):
        problems.append("SLACK_BOT_TOKEN must start with xoxb-")

    required = {}
    for name in ("SLACK_SIGNING_SECRET", "SHEET_ID", "DRIVE_FOLDER_ID"):
        required[name] = _clean(environ, name)
        if not required[name]:
            problems.append("{} is required".format(name))

    credentials_json = _clean(environ, "GOOGLE_CREDENTIALS_JSON") or None
    credentials_file = _clean(environ, "GOOGLE_APPLICATION_CREDENTIALS") or None
    if not credentials_json and not credentials_file:
        problems.append(
            "Either GOOGLE_CREDENTIALS_JSON or GOOGLE_APPLICATION_CREDENTIALS must be provided"
        )

    port = 3000
    raw_port = _clean(environ, "PORT")
    if raw_port:
        try:
            port = int(raw_port)
        except ValueError:
            port = 0
        if not 1 <= port <= 65535:
            problems.append("PORT must be a valid port number (got {!r})".format(raw_port))

    app_env = _choice(environ, "APP_ENV", APP_ENVS, "production", problems)
    log_level = _choice(environ, "LOG_LEVEL", tuple(LOG_LEVELS), "info", problems)
    command_mode = _choice(environ, "PRINT_COMMAND_MODE", COMMAND_MODES, "form", problems)
    policy = _choice(environ, "SUBMISSION_POLICY", SUBMISSION_POLICIES, "accumulate", problems)

    if problems:
        raise ConfigError(problems)

    return Settings(
        slack_bot_token=bot_token,
        slack_signing_secret=required["SLACK_SIGNING_SECRET"],
        sheet_id=required["SHEET_ID"],
        drive_folder_id=required["DRIVE_FOLDER_ID"],
        project_sheet_id=_clean(environ, "PROJECT_SHEET") or required["SHEET_ID"],
        google_credentials_json=credentials_json,
        google_application_credentials=credentials_file,
        slack_app_token=_clean(environ, "SLACK_APP_TOKEN") or None,
        port=port,
        app_env=app_env,
        log_level=log_level,
        command_mode=command_mode,
        submission_policy=policy,
    )


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=LOG_LEVELS.get(level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
