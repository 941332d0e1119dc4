"""Service-account credentials for Google Drive and Sheets.

WHY: A pasted GOOGLE_CREDENTIALS_JSON is easy to get wrong (a user OAuth
client, a truncated key). Validating the key's shape up front turns an
opaque google-auth failure at first use into a clear startup error.

RULES:
- GOOGLE_CREDENTIALS_JSON (inline JSON) wins over a key file path
- Both sources are checked against SERVICE_ACCOUNT_SCHEMA with jsonschema
- Scopes cover Drive and Sheets; one credential object serves both clients
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import jsonschema
from google.oauth2.service_account import Credentials

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]

SERVICE_ACCOUNT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["type", "client_email", "private_key", "token_uri"],
    "properties": {
        "type": {"const": "service_account"},
        "client_email": {"type": "string", "minLength": 1},
        "private_key": {"type": "string", "minLength": 1},
        "token_uri": {"type": "string", "minLength": 1},
        "project_id": {"type": "string"},
    },
}


def validate_service_account_info(info: Any, source: str) -> Dict[str, Any]:
    """Check a parsed key against SERVICE_ACCOUNT_SCHEMA.

    Raises:
        ValueError: Naming ``source`` and the first schema violation.
    """
    try:
        jsonschema.validate(instance=info, schema=SERVICE_ACCOUNT_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ValueError("Invalid service account key in {}: {}".format(source, exc.message)) from exc
    return info


def load_credentials(
    credentials_json: Optional[str] = None,
    credentials_file: Optional[str] = None,
) -> Credentials:
    """Build service-account credentials from inline JSON or a key file.

    Raises ValueError with a descriptive message when neither source is
    usable.
    """
    if credentials_json:
        source = "GOOGLE_CREDENTIALS_JSON"
        try:
            info = json.loads(credentials_json)
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid {}: {}".format(source, exc)) from exc
        logger.info("Google authentication initialized from environment variable")
    else:
        if not credentials_file:
            raise ValueError(
                "Either GOOGLE_CREDENTIALS_JSON or GOOGLE_APPLICATION_CREDENTIALS must be set"
            )
        if not os.path.exists(credentials_file):
            raise ValueError("Service account key file not found at: {}".format(credentials_file))
        source = credentials_file
        try:
            with open(credentials_file, "r", encoding="utf-8") as f:
                info = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid JSON in {}: {}".format(source, exc)) from exc
        logger.info("Google authentication initialized from file")

    validate_service_account_info(info, source)
    return Credentials.from_service_account_info(info, scopes=SCOPES)
