"""Slack Web API gateway used by the router and the upload pipeline.

WHY: The router needs a handful of chat operations (replies, modals, user
and file lookups, downloads) and must not care about slack_sdk response
shapes or exceptions. This class is the only place that does.

HOW: Thin methods over slack_sdk's WebClient. Failures surface as
UpstreamError; the two best-effort lookups (display name, permalink)
return None instead. File downloads use httpx with the bot token, the same
way private Slack files are fetched elsewhere in the bot.

RULES:
- Downloads use url_private_download / url_private with Bearer auth
- resolve_user_display_name: real_name, then name, else None
- resolve_permalink: file permalink first, then the first public share
  through chat.getPermalink
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from slack_print_bot.core.errors import UpstreamError
from slack_print_bot.core.files import validate_file_id
from slack_print_bot.core.models import FileRef

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_S = 120.0


class SlackGateway:
    """Chat-platform operations consumed by the coordinator."""

    def __init__(self, client: WebClient, bot_token: Optional[str] = None) -> None:
        self.client = client
        self.bot_token = bot_token or client.token or ""

    def send_ephemeral(
        self,
        channel: str,
        user: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        try:
            self.client.chat_postEphemeral(channel=channel, user=user, text=text, blocks=blocks)
        except SlackApiError as exc:
            raise UpstreamError("slack", "chat.postEphemeral failed: {}".format(exc)) from exc

    def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        try:
            self.client.chat_postMessage(channel=channel, text=text, blocks=blocks)
        except SlackApiError as exc:
            raise UpstreamError("slack", "chat.postMessage failed: {}".format(exc)) from exc

    def open_form(self, trigger_id: str, view: Dict[str, Any]) -> str:
        """Open a modal and return its view id."""
        try:
            resp = self.client.views_open(trigger_id=trigger_id, view=view)
        except SlackApiError as exc:
            raise UpstreamError("slack", "views.open failed: {}".format(exc)) from exc
        return (resp.get("view") or {}).get("id", "")

    def update_form(self, view_id: str, view: Dict[str, Any]) -> None:
        try:
            self.client.views_update(view_id=view_id, view=view)
        except SlackApiError as exc:
            raise UpstreamError("slack", "views.update failed: {}".format(exc)) from exc

    def resolve_user_display_name(self, user_id: str) -> Optional[str]:
        try:
            resp = self.client.users_info(user=user_id)
        except SlackApiError as exc:
            logger.warning("Failed to get user info for %s: %s", user_id, exc)
            return None
        user = resp.get("user") or {}
        return user.get("real_name") or user.get("name") or None

    def resolve_file_metadata(self, file_id: str) -> FileRef:
        validate_file_id(file_id)
        try:
            resp = self.client.files_info(file=file_id)
        except SlackApiError as exc:
            raise UpstreamError("slack", "files.info failed for {}: {}".format(file_id, exc)) from exc
        return FileRef.from_slack(resp.get("file") or {})

    def resolve_permalink(self, file_ref: FileRef) -> Optional[str]:
        if file_ref.permalink:
            return file_ref.permalink

        for channel, shares in file_ref.public_shares.items():
            ts = shares[0].get("ts") if shares else None
            if not ts:
                continue
            try:
                resp = self.client.chat_getPermalink(channel=channel, message_ts=ts)
            except SlackApiError as exc:
                logger.warning("Failed to get permalink in %s: %s", channel, exc)
                return None
            return resp.get("permalink") or None
        return None

    def download_file_bytes(self, file_ref: FileRef) -> bytes:
        if not file_ref.url:
            raise UpstreamError("slack", "No downloadable URL found for {}".format(file_ref.name))

        logger.info("Downloading %s from Slack", file_ref.name)
        try:
            with httpx.Client(timeout=DOWNLOAD_TIMEOUT_S, follow_redirects=True) as http:
                resp = http.get(
                    file_ref.url,
                    headers={"Authorization": "Bearer {}".format(self.bot_token)},
                )
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            raise UpstreamError("slack", "download failed for {}: {}".format(file_ref.name, exc)) from exc
