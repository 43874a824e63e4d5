"""Discord notification sink — posts and edits messages through a webhook.

Messages are created by executing the webhook with ``wait=true`` so Discord
returns the created message, and edited with
``PATCH {webhook}/messages/{id}``.  The message ``id`` is the handle.

Requires a webhook URL in the configuration.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

import httpx

from nomad_notifier.config import NotifierConfig
from nomad_notifier.models.notification import Notification
from nomad_notifier.routing.sinks import (
    SinkDeliveryError,
    SinkNotEnabledError,
    UpsertSink,
)
from nomad_notifier.routing.sinks._formatting import DEFAULT_STALE_AFTER_SECONDS


class DiscordSink(UpsertSink):
    """Announces deployments and OOM allocations through a Discord webhook.

    Discord webhooks cannot carry interactive buttons, so notification
    actions are dropped.  Each notification field becomes one embed.
    """

    def __init__(
        self,
        webhook_url: str,
        ui_base_url: str,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if not webhook_url:
            raise SinkNotEnabledError(
                "set DISCORD_WEBHOOK_URL to enable the discord sink"
            )
        super().__init__(
            ui_base_url,
            client=client,
            timeout=timeout,
            stale_after_seconds=stale_after_seconds,
            clock=clock,
            log=log,
        )
        self._webhook_url = webhook_url.rstrip("/")

    @classmethod
    def from_config(
        cls, config: NotifierConfig, log: logging.Logger | None = None
    ) -> DiscordSink:
        return cls(
            webhook_url=config.discord_webhook_url,
            ui_base_url=config.ui_base_url,
            timeout=config.http_timeout_seconds,
            stale_after_seconds=config.stale_after_seconds,
            log=log,
        )

    @property
    def sink_name(self) -> str:
        return "discord"

    def render(self, notification: Notification) -> dict[str, Any]:
        return {
            "content": notification.text,
            "embeds": [
                {
                    "title": field.title,
                    "description": field.body,
                    "color": field.color.as_int,
                }
                for field in notification.fields
            ],
        }

    def create_message(self, body: dict[str, Any]) -> str:
        return self._send(
            "POST", self._webhook_url, body, params={"wait": "true"}
        )

    def update_message(self, handle: str, body: dict[str, Any]) -> str:
        return self._send("PATCH", f"{self._webhook_url}/messages/{handle}", body)

    def _send(
        self,
        method: str,
        url: str,
        body: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> str:
        try:
            response = self._client.request(method, url, json=body, params=params)
        except httpx.HTTPError as exc:
            raise SinkDeliveryError(
                self.sink_name, f"{method} webhook failed: {exc}"
            ) from exc

        if response.status_code >= 300:
            raise SinkDeliveryError(
                self.sink_name,
                f"{method} webhook returned {response.status_code}: {response.text}",
            )
        try:
            message_id = response.json().get("id")
        except ValueError as exc:
            raise SinkDeliveryError(
                self.sink_name, f"{method} webhook returned invalid JSON: {exc}"
            ) from exc
        if not message_id:
            raise SinkDeliveryError(
                self.sink_name, f"{method} webhook returned no message id"
            )
        return str(message_id)
