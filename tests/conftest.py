"""Shared test fixtures for nomad-notifier."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from nomad_notifier.models.nomad import Allocation, Deployment, Event

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
NOW_NS = int(NOW.timestamp()) * 1_000_000_000
UI_URL = "http://nomad.test:4646"


@pytest.fixture
def now() -> datetime:
    """The instant every snapshot factory treats as the present."""
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """A clock frozen at ``NOW``."""
    return lambda: NOW


# ---------------------------------------------------------------------------
# Snapshot factories — shared across test modules
# ---------------------------------------------------------------------------


def _oom_task_state(**overrides: Any) -> dict[str, Any]:
    """Wire-format task state whose history contains an OOM kill."""
    state: dict[str, Any] = {
        "State": "dead",
        "Failed": True,
        "Restarts": 2,
        "Events": [
            {"Type": "Started", "DisplayMessage": "Task started by client", "Details": {}},
            {
                "Type": "Terminated",
                "DisplayMessage": "Exit Code: 137, Exit Message: \"OOM Killed\"",
                "Details": {"exit_code": "137", "signal": "", "oom_killed": "true"},
            },
        ],
    }
    state.update(overrides)
    return state


def _healthy_task_state() -> dict[str, Any]:
    return {
        "State": "running",
        "Failed": False,
        "Restarts": 0,
        "Events": [
            {"Type": "Received", "DisplayMessage": "Task received by client", "Details": {}},
            {"Type": "Started", "DisplayMessage": "Task started by client", "Details": {}},
        ],
    }


@pytest.fixture
def oom_state() -> dict[str, Any]:
    """Wire-format task state with an OOM-killed Terminated event."""
    return _oom_task_state()


@pytest.fixture
def healthy_state() -> dict[str, Any]:
    """Wire-format task state with no OOM signal."""
    return _healthy_task_state()


@pytest.fixture
def make_deployment() -> Callable[..., Deployment]:
    """Factory fixture: build a Deployment from wire-format fields."""

    def _factory(**overrides: Any) -> Deployment:
        data: dict[str, Any] = {
            "ID": "dep-1",
            "JobID": "web",
            "Namespace": "default",
            "Status": "running",
            "StatusDescription": "Deployment is running",
            "TaskGroups": {
                "api": {
                    "DesiredTotal": 3,
                    "PlacedAllocs": 2,
                    "HealthyAllocs": 1,
                    "UnhealthyAllocs": 0,
                    "DesiredCanaries": 1,
                    "PlacedCanaries": ["alloc-c1"],
                }
            },
        }
        data.update(overrides)
        return Deployment.model_validate(data)

    return _factory


@pytest.fixture
def make_allocation() -> Callable[..., Allocation]:
    """Factory fixture: build a fresh Allocation with one OOM-killed task."""

    def _factory(**overrides: Any) -> Allocation:
        data: dict[str, Any] = {
            "ID": "alloc-1",
            "JobID": "web",
            "TaskGroup": "api",
            "ClientStatus": "failed",
            "ClientDescription": "Failed tasks",
            "NextAllocation": "",
            "ModifyTime": NOW_NS,
            "TaskStates": {"server": _oom_task_state()},
        }
        data.update(overrides)
        return Allocation.model_validate(data)

    return _factory


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory fixture: wrap a snapshot payload in a stream Event."""

    def _factory(topic: str, payload: dict[str, Any], index: int = 10) -> Event:
        return Event.model_validate(
            {
                "Topic": topic,
                "Type": f"{topic}Updated",
                "Key": payload.get("ID", ""),
                "Index": index,
                "Payload": {topic: payload},
            }
        )

    return _factory


# ---------------------------------------------------------------------------
# HTTP doubles
# ---------------------------------------------------------------------------


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request and its decoded JSON body."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self.bodies: list[Any] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            self.bodies.append(json.loads(request.content) if request.content else None)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def slack_transport() -> RecordingTransport:
    """Slack Web API double: every call succeeds with a fresh ``ts``."""
    counter = {"n": 0}

    def _handler(request: httpx.Request) -> httpx.Response:
        counter["n"] += 1
        return httpx.Response(
            200, json={"ok": True, "channel": "C1", "ts": f"1700000000.00{counter['n']}"}
        )

    return RecordingTransport(_handler)


@pytest.fixture
def discord_transport() -> RecordingTransport:
    """Discord webhook double: every call returns a fresh message id."""
    counter = {"n": 0}

    def _handler(request: httpx.Request) -> httpx.Response:
        counter["n"] += 1
        return httpx.Response(200, json={"id": f"msg-{counter['n']}"})

    return RecordingTransport(_handler)
