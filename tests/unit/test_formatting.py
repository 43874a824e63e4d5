"""Unit tests for the shared filter and formatting helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from nomad_notifier import __version__
from nomad_notifier.models.nomad import TaskEvent
from nomad_notifier.models.notification import StatusColor
from nomad_notifier.routing.sinks._formatting import (
    MANUAL_PROMOTION_DESCRIPTION,
    allocation_skip_reason,
    format_allocation,
    format_deployment,
    format_task_event,
    is_stale,
    is_superseded,
)

UI_URL = "http://nomad.test:4646"


class TestFormatDeployment:
    def test_manual_promotion_adds_promote_and_fail(self, make_deployment):
        deployment = make_deployment(StatusDescription=MANUAL_PROMOTION_DESCRIPTION)
        notification = format_deployment(deployment, UI_URL)

        assert [action.name for action in notification.actions] == ["promote", "fail"]
        fail = notification.actions[1]
        assert fail.style == "danger"
        assert fail.confirm is not None

    @pytest.mark.parametrize(
        "description",
        [
            "Deployment is running",
            "deployment is running but requires manual promotion",
            MANUAL_PROMOTION_DESCRIPTION + ".",
            "",
        ],
    )
    def test_other_descriptions_have_no_actions(self, make_deployment, description):
        deployment = make_deployment(StatusDescription=description)
        assert format_deployment(deployment, UI_URL).actions == []

    def test_one_field_per_task_group(self, make_deployment):
        deployment = make_deployment(
            TaskGroups={
                "web": {"DesiredTotal": 2, "PlacedAllocs": 2, "HealthyAllocs": 2},
                "cache": {"DesiredTotal": 1, "UnhealthyAllocs": 1},
            }
        )
        notification = format_deployment(deployment, UI_URL)

        assert [field.title for field in notification.fields] == [
            "Task Group: cache",
            "Task Group: web",
        ]
        assert notification.fields[0].body == (
            "Desired: 1, Placed: 0, Healthy: 0, Unhealthy: 1, "
            "DesiredCanaries: 0, PlacedCanaries: []"
        )

    def test_placed_canaries_are_space_separated(self, make_deployment):
        deployment = make_deployment(
            TaskGroups={
                "api": {
                    "DesiredTotal": 3,
                    "DesiredCanaries": 2,
                    "PlacedCanaries": ["alloc-c1", "alloc-c2"],
                }
            }
        )
        body = format_deployment(deployment, UI_URL).fields[0].body

        assert body.endswith("DesiredCanaries: 2, PlacedCanaries: [alloc-c1 alloc-c2]")

    @pytest.mark.parametrize(
        ("status", "color"),
        [
            ("failed", StatusColor.FAILED),
            ("running", StatusColor.RUNNING),
            ("successful", StatusColor.SUCCESSFUL),
            ("cancelled", StatusColor.DEFAULT),
        ],
    )
    def test_color_follows_status(self, make_deployment, status, color):
        notification = format_deployment(make_deployment(Status=status), UI_URL)
        assert notification.color is color
        assert all(field.color is color for field in notification.fields)

    def test_links_and_footer(self, make_deployment):
        notification = format_deployment(make_deployment(), UI_URL)

        assert notification.title_link == f"{UI_URL}/ui/jobs/web/deployments"
        assert notification.author == "web deployment update"
        assert "Deploy ID: dep-1" in notification.footer
        assert __version__ in notification.footer
        assert f"url: {UI_URL}/ui/jobs/web/deployments" in notification.text

    def test_deployment_without_task_groups_still_notifies(self, make_deployment):
        notification = format_deployment(make_deployment(TaskGroups={}), UI_URL)
        assert notification.fields == []
        assert notification.title == "Deployment is running"


class TestFormatAllocation:
    def test_no_oom_yields_empty_payload(self, make_allocation, healthy_state):
        allocation = make_allocation(TaskStates={"server": healthy_state})
        assert format_allocation(allocation, UI_URL).is_empty

    def test_oom_task_yields_field_with_exit_code(self, make_allocation, healthy_state):
        allocation = make_allocation(
            TaskStates={
                "server": {
                    "State": "dead",
                    "Failed": True,
                    "Restarts": 1,
                    "Events": [
                        {
                            "Type": "Terminated",
                            "DisplayMessage": "Killed: OOM",
                            "Details": {"exit_code": "137"},
                        }
                    ],
                },
                "sidecar": healthy_state,
            }
        )
        notification = format_allocation(allocation, UI_URL)

        assert len(notification.fields) == 1
        field = notification.fields[0]
        assert "137" in field.body
        assert field.title == (
            "taskState:dead Failed: True, Restarts: 1 Task Group: api Task: server"
        )

    def test_body_lists_every_event(self, make_allocation):
        notification = format_allocation(make_allocation(), UI_URL)
        body = notification.fields[0].body

        assert body.startswith("-----")
        assert "*Started*: Task started by client" in body
        assert "exit_code: 137" in body
        assert "signal:" not in body

    def test_links_and_color(self, make_allocation):
        notification = format_allocation(make_allocation(), UI_URL)

        assert notification.color is StatusColor.FAILED
        assert notification.title == "Failed tasks"
        assert notification.title_link == f"{UI_URL}/ui/jobs/web/api"
        assert notification.author_link == f"{UI_URL}/ui/allocations/alloc-1"
        assert "Allocation ID: alloc-1" in notification.footer


class TestFormatTaskEvent:
    def test_terminated_details(self):
        event = TaskEvent(
            type="Terminated",
            display_message="Exit Code: 137",
            details={"exit_code": "137", "signal": "9", "kill_reason": "ignored"},
        )
        line = format_task_event(event)
        assert line.endswith(", exit_code: 137, signal: 9")
        assert "kill_reason" not in line

    def test_killed_details(self):
        event = TaskEvent(
            type="Killed",
            display_message="Task successfully killed",
            details={
                "kill_reason": "OOM",
                "kill_error": "",
                "kill_timeout": "5s",
                "exit_code": "137",
            },
        )
        line = format_task_event(event)
        assert ", kill_reason: OOM" in line
        assert ", kill_timeout: 5s" in line
        assert "kill_error" not in line
        assert "exit_code" not in line

    def test_driver_message_included(self):
        event = TaskEvent(
            type="Driver",
            display_message="Downloading image",
            details={"driver_message": "pulling redis:7"},
        )
        assert format_task_event(event) == "*Driver*: Downloading image pulling redis:7"


class TestAllocationFilters:
    def test_fresh_allocation_passes(self, make_allocation, now):
        assert allocation_skip_reason(make_allocation(), now=now) is None

    def test_stale_allocation_skipped(self, make_allocation, now):
        later = now + timedelta(seconds=301)
        allocation = make_allocation()
        assert is_stale(allocation, now=later)
        assert allocation_skip_reason(allocation, now=later) == "stale"

    def test_window_boundary_is_not_stale(self, make_allocation, now):
        assert not is_stale(make_allocation(), now=now + timedelta(seconds=300))

    def test_custom_window(self, make_allocation, now):
        later = now + timedelta(seconds=61)
        assert is_stale(make_allocation(), now=later, window_seconds=60)

    def test_superseded_allocation_skipped(self, make_allocation, now):
        allocation = make_allocation(NextAllocation="alloc-2")
        assert is_superseded(allocation)
        assert allocation_skip_reason(allocation, now=now) == "superseded"
