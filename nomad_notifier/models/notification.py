"""Sink-agnostic notification payloads.

A ``Notification`` is what the formatter produces and what each sink
renders into its own wire format (Slack attachments, Discord embeds).
Payloads are built fresh for every upsert and never persisted.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StatusColor(str, Enum):
    """Hex colors keyed by Nomad status."""

    FAILED = "#dd4e58"
    RUNNING = "#1daeff"
    SUCCESSFUL = "#36a64f"
    DEFAULT = "#D3D3D3"

    @classmethod
    def for_status(cls, status: str) -> StatusColor:
        """Map a deployment or client status onto its color."""
        return _STATUS_COLORS.get(status, cls.DEFAULT)

    @property
    def as_int(self) -> int:
        """The color as a 24-bit integer (Discord's embed format)."""
        return int(self.value.lstrip("#"), 16)


_STATUS_COLORS: dict[str, StatusColor] = {
    "failed": StatusColor.FAILED,
    "running": StatusColor.RUNNING,
    "successful": StatusColor.SUCCESSFUL,
}


class ActionConfirmation(BaseModel):
    """Confirmation dialog shown before a destructive action runs."""

    model_config = ConfigDict(frozen=True)

    title: str
    text: str
    ok_text: str
    dismiss_text: str


class NotificationAction(BaseModel):
    """An interactive button attached to a notification."""

    model_config = ConfigDict(frozen=True)

    name: str
    text: str
    style: str = ""
    confirm: ActionConfirmation | None = None


class NotificationField(BaseModel):
    """A titled block of text inside a notification."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str
    color: StatusColor = StatusColor.DEFAULT


class Notification(BaseModel):
    """A rendered notification, independent of any chat system."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    fallback: str = ""
    title: str = ""
    title_link: str = ""
    author: str = ""
    author_link: str = ""
    color: StatusColor = StatusColor.DEFAULT
    fields: list[NotificationField] = []
    actions: list[NotificationAction] = []
    footer: str = ""

    @property
    def is_empty(self) -> bool:
        """A notification without fields has nothing worth sending."""
        return not self.fields
