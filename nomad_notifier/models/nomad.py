"""Nomad entity snapshots and raw event-stream records.

Nomad's API speaks PascalCase JSON (``JobID``, ``TaskGroups``, ...).  Each
model maps those keys onto snake_case attributes through field aliases, so
``Deployment.model_validate(payload)`` accepts the wire format directly
while Python code can still construct models by attribute name.

Snapshots arrive wholesale on every update.  Nothing here diffs them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_NOMAD_MODEL_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    extra="ignore",
)


class Topic(str, Enum):
    """Event-stream topics the notifier subscribes to."""

    DEPLOYMENT = "Deployment"
    ALLOCATION = "Allocation"


class TaskEventType(str, Enum):
    """Task event kinds that carry structured failure details."""

    TERMINATED = "Terminated"
    KILLED = "Killed"


# ---------------------------------------------------------------------------
# Deployments
# ---------------------------------------------------------------------------


class DeploymentState(BaseModel):
    """Rollout progress of a single task group within a deployment."""

    model_config = _NOMAD_MODEL_CONFIG

    desired_total: int = Field(0, alias="DesiredTotal")
    placed_allocs: int = Field(0, alias="PlacedAllocs")
    healthy_allocs: int = Field(0, alias="HealthyAllocs")
    unhealthy_allocs: int = Field(0, alias="UnhealthyAllocs")
    desired_canaries: int = Field(0, alias="DesiredCanaries")
    placed_canaries: list[str] = Field(default_factory=list, alias="PlacedCanaries")
    promoted: bool = Field(False, alias="Promoted")

    @field_validator("placed_canaries", mode="before")
    @classmethod
    def _null_canaries(cls, value: Any) -> Any:
        return [] if value is None else value


class Deployment(BaseModel):
    """A deployment snapshot as published on the ``Deployment`` topic."""

    model_config = _NOMAD_MODEL_CONFIG

    id: str = Field(alias="ID")
    job_id: str = Field("", alias="JobID")
    namespace: str = Field("default", alias="Namespace")
    status: str = Field("", alias="Status")
    status_description: str = Field("", alias="StatusDescription")
    task_groups: dict[str, DeploymentState] = Field(
        default_factory=dict, alias="TaskGroups"
    )
    modify_index: int = Field(0, alias="ModifyIndex")

    @field_validator("task_groups", mode="before")
    @classmethod
    def _null_task_groups(cls, value: Any) -> Any:
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Allocations
# ---------------------------------------------------------------------------


class TaskEvent(BaseModel):
    """One entry in a task's event history."""

    model_config = _NOMAD_MODEL_CONFIG

    type: str = Field("", alias="Type")
    display_message: str = Field("", alias="DisplayMessage")
    details: dict[str, str] = Field(default_factory=dict, alias="Details")
    time: int = Field(0, alias="Time")

    @field_validator("details", mode="before")
    @classmethod
    def _null_details(cls, value: Any) -> Any:
        return {} if value is None else value

    def detail(self, key: str) -> str:
        """Return the detail value for *key*, or ``""`` when absent."""
        return self.details.get(key, "")


class TaskState(BaseModel):
    """Current state and event history of one task in an allocation."""

    model_config = _NOMAD_MODEL_CONFIG

    state: str = Field("", alias="State")
    failed: bool = Field(False, alias="Failed")
    restarts: int = Field(0, alias="Restarts")
    events: list[TaskEvent] = Field(default_factory=list, alias="Events")

    @field_validator("events", mode="before")
    @classmethod
    def _null_events(cls, value: Any) -> Any:
        return [] if value is None else value


class Allocation(BaseModel):
    """An allocation snapshot as published on the ``Allocation`` topic.

    ``modify_time`` is Unix time in nanoseconds, as Nomad reports it.
    """

    model_config = _NOMAD_MODEL_CONFIG

    id: str = Field(alias="ID")
    job_id: str = Field("", alias="JobID")
    namespace: str = Field("default", alias="Namespace")
    task_group: str = Field("", alias="TaskGroup")
    client_status: str = Field("", alias="ClientStatus")
    client_description: str = Field("", alias="ClientDescription")
    next_allocation: str = Field("", alias="NextAllocation")
    modify_time: int = Field(0, alias="ModifyTime")
    task_states: dict[str, TaskState] = Field(default_factory=dict, alias="TaskStates")

    @field_validator("task_states", mode="before")
    @classmethod
    def _null_task_states(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("next_allocation", mode="before")
    @classmethod
    def _null_next_allocation(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def modified_at(self) -> datetime:
        """Return ``modify_time`` as an aware UTC datetime."""
        return datetime.fromtimestamp(self.modify_time / 1e9, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Event stream records
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """A single raw event from ``/v1/event/stream``.

    The payload stays undecoded until the consumer knows which snapshot
    type the topic calls for.
    """

    model_config = _NOMAD_MODEL_CONFIG

    topic: str = Field("", alias="Topic")
    type: str = Field("", alias="Type")
    key: str = Field("", alias="Key")
    namespace: str = Field("", alias="Namespace")
    index: int = Field(0, alias="Index")
    payload: dict[str, Any] = Field(default_factory=dict, alias="Payload")

    @field_validator("payload", mode="before")
    @classmethod
    def _null_payload(cls, value: Any) -> Any:
        return {} if value is None else value


class EventBatch(BaseModel):
    """One frame of the event stream.

    A frame is exactly one of: a transport error, a heartbeat (no events
    and no error), or a non-empty list of events.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    index: int = Field(0, alias="Index")
    events: list[Event] = Field(default_factory=list, alias="Events")
    error: Exception | None = Field(None, exclude=True)

    @field_validator("events", mode="before")
    @classmethod
    def _null_events(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_heartbeat(self) -> bool:
        return self.error is None and not self.events
