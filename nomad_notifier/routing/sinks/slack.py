"""Slack notification sink — posts and edits messages via the Web API.

Messages are sent with ``chat.postMessage`` and edited with
``chat.update``.  The message handle is Slack's ``ts`` timestamp, which
``chat.update`` echoes back and which is recorded again after each edit.

Requires a bot token (``xoxb-...``) and a channel ID in the configuration.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

import httpx

from nomad_notifier.config import NotifierConfig
from nomad_notifier.models.notification import Notification, NotificationAction
from nomad_notifier.routing.sinks import (
    SinkDeliveryError,
    SinkNotEnabledError,
    UpsertSink,
)
from nomad_notifier.routing.sinks._formatting import DEFAULT_STALE_AFTER_SECONDS

SLACK_API_URL = "https://slack.com/api"


def _render_action(action: NotificationAction) -> dict[str, Any]:
    rendered: dict[str, Any] = {
        "name": action.name,
        "text": action.text,
        "type": "button",
    }
    if action.style:
        rendered["style"] = action.style
    if action.confirm is not None:
        rendered["confirm"] = {
            "title": action.confirm.title,
            "text": action.confirm.text,
            "ok_text": action.confirm.ok_text,
            "dismiss_text": action.confirm.dismiss_text,
        }
    return rendered


class SlackSink(UpsertSink):
    """Announces deployments and OOM allocations in a Slack channel.

    Parameters
    ----------
    token:
        Bot user OAuth token.
    channel:
        Channel ID to post into.
    ui_base_url:
        Base URL of the Nomad UI, used for deep links.
    client:
        Pre-built ``httpx.Client``; one is created when omitted.
    api_url:
        Slack Web API root.  Overridable for tests and proxies.
    """

    def __init__(
        self,
        token: str,
        channel: str,
        ui_base_url: str,
        client: httpx.Client | None = None,
        api_url: str = SLACK_API_URL,
        timeout: float = 10.0,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if not token or not channel:
            raise SinkNotEnabledError(
                "set SLACK_TOKEN and SLACK_CHANNEL to enable the slack sink"
            )
        super().__init__(
            ui_base_url,
            client=client,
            timeout=timeout,
            stale_after_seconds=stale_after_seconds,
            clock=clock,
            log=log,
        )
        self._channel = channel
        self._api_url = api_url.rstrip("/")
        self._client.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(
        cls, config: NotifierConfig, log: logging.Logger | None = None
    ) -> SlackSink:
        return cls(
            token=config.slack_token,
            channel=config.slack_channel,
            ui_base_url=config.ui_base_url,
            timeout=config.http_timeout_seconds,
            stale_after_seconds=config.stale_after_seconds,
            log=log,
        )

    @property
    def sink_name(self) -> str:
        return "slack"

    @property
    def channel(self) -> str:
        return self._channel

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, notification: Notification) -> dict[str, Any]:
        attachment: dict[str, Any] = {
            "fallback": notification.fallback,
            "color": notification.color.value,
            "author_name": notification.author,
            "author_link": notification.author_link,
            "title": notification.title,
            "title_link": notification.title_link,
            "fields": [
                {"title": field.title, "value": field.body, "short": False}
                for field in notification.fields
            ],
            "footer": notification.footer,
            "ts": int(time.time()),
        }
        if notification.actions:
            attachment["actions"] = [
                _render_action(action) for action in notification.actions
            ]
        return {
            "channel": self._channel,
            "as_user": True,
            "attachments": [attachment],
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def create_message(self, body: dict[str, Any]) -> str:
        return self._call("chat.postMessage", body)

    def update_message(self, handle: str, body: dict[str, Any]) -> str:
        return self._call("chat.update", {**body, "ts": handle})

    def _call(self, method: str, body: dict[str, Any]) -> str:
        try:
            response = self._client.post(f"{self._api_url}/{method}", json=body)
        except httpx.HTTPError as exc:
            raise SinkDeliveryError(self.sink_name, f"{method} failed: {exc}") from exc

        if response.status_code >= 300:
            raise SinkDeliveryError(
                self.sink_name,
                f"{method} returned {response.status_code}: {response.text}",
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise SinkDeliveryError(
                self.sink_name, f"{method} returned invalid JSON: {exc}"
            ) from exc

        if not data.get("ok"):
            raise SinkDeliveryError(
                self.sink_name, f"{method} rejected: {data.get('error', 'unknown_error')}"
            )
        ts = data.get("ts")
        if not ts:
            raise SinkDeliveryError(self.sink_name, f"{method} returned no ts")
        return str(ts)
