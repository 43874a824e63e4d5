"""Pydantic models for Nomad snapshots and notification payloads."""

from nomad_notifier.models.nomad import (
    Allocation,
    Deployment,
    DeploymentState,
    Event,
    EventBatch,
    TaskEvent,
    TaskEventType,
    TaskState,
    Topic,
)
from nomad_notifier.models.notification import (
    ActionConfirmation,
    Notification,
    NotificationAction,
    NotificationField,
    StatusColor,
)

__all__ = [
    "ActionConfirmation",
    "Allocation",
    "Deployment",
    "DeploymentState",
    "Event",
    "EventBatch",
    "Notification",
    "NotificationAction",
    "NotificationField",
    "StatusColor",
    "TaskEvent",
    "TaskEventType",
    "TaskState",
    "Topic",
]
