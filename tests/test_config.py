"""Tests for environment validation and catalog data."""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from slack_print_bot.config import (
    ALL_MATERIALS,
    PRINTER_MATERIALS,
    PRINTERS,
    ConfigError,
    configure_logging,
    load_settings,
)

VALID_ENV = {
    "SLACK_BOT_TOKEN": "xoxb-123",
    "SLACK_SIGNING_SECRET": "secret",
    "SHEET_ID": "sheet-1",
    "DRIVE_FOLDER_ID": "folder-1",
    "GOOGLE_CREDENTIALS_JSON": '{"type": "service_account"}',
}


def _env(**overrides):
    env = dict(VALID_ENV)
    for key, value in overrides.items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
    return env


class TestLoadSettings:
    def test_valid_environment(self):
        settings = load_settings(_env())
        assert settings.slack_bot_token == "xoxb-123"
        assert settings.sheet_id == "sheet-1"
        assert settings.port == 3000
        assert settings.app_env == "production"
        assert settings.log_level == "info"
        assert settings.command_mode == "form"
        assert settings.submission_policy == "accumulate"
        assert settings.slack_app_token is None

    def test_project_sheet_defaults_to_sheet_id(self):
        assert load_settings(_env()).project_sheet_id == "sheet-1"
        assert load_settings(_env(PROJECT_SHEET="projects")).project_sheet_id == "projects"

    def test_credentials_file_alone_is_enough(self):
        settings = load_settings(_env(
            GOOGLE_CREDENTIALS_JSON=None, GOOGLE_APPLICATION_CREDENTIALS="/keys/sa.json"
        ))
        assert settings.google_application_credentials == "/keys/sa.json"

    def test_collects_every_problem(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings({})
        problems = " ".join(exc_info.value.problems)
        for name in (
            "SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET", "SHEET_ID",
            "DRIVE_FOLDER_ID", "GOOGLE_CREDENTIALS_JSON",
        ):
            assert name in problems
        assert isinstance(exc_info.value, ValueError)

    def test_bot_token_prefix(self):
        with pytest.raises(ConfigError, match="xoxb-"):
            load_settings(_env(SLACK_BOT_TOKEN="xoxp-123"))

    @pytest.mark.parametrize("port", ["abc", "0", "70000"])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigError, match="PORT"):
            load_settings(_env(PORT=port))

    def test_choices_are_case_insensitive(self):
        settings = load_settings(_env(
            APP_ENV="Development", LOG_LEVEL="DEBUG", PRINT_COMMAND_MODE="Waitlist",
            SUBMISSION_POLICY="replace",
        ))
        assert settings.is_development is True
        assert settings.log_level == "debug"
        assert settings.command_mode == "waitlist"
        assert settings.submission_policy == "replace"

    def test_invalid_log_level(self):
        with pytest.raises(ConfigError, match="LOG_LEVEL"):
            load_settings(_env(LOG_LEVEL="verbose"))

    def test_settings_are_frozen(self):
        settings = load_settings(_env())
        with pytest.raises(Exception):
            settings.port = 8080


class TestCatalogData:
    def test_every_printer_has_materials(self):
        assert set(PRINTERS) == set(PRINTER_MATERIALS)

    def test_all_materials_covers_each_printer(self):
        for materials in PRINTER_MATERIALS.values():
            assert set(materials) <= set(ALL_MATERIALS)
            assert materials[-1] == "Other"


class TestConfigureLogging:
    def test_warn_maps_to_warning(self):
        with patch("slack_print_bot.config.logging.basicConfig") as basic_config:
            configure_logging("warn")
        assert basic_config.call_args.kwargs["level"] == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        with patch("slack_print_bot.config.logging.basicConfig") as basic_config:
            configure_logging("chatty")
        assert basic_config.call_args.kwargs["level"] == logging.INFO
