"""Shared filtering and formatting helpers for notification sinks.

Turns Nomad snapshots into sink-agnostic ``Notification`` payloads and
decides which snapshots are worth announcing at all.  Everything here is a
pure function of its inputs; sinks only translate the result into their own
wire format.
"""

from __future__ import annotations

from datetime import datetime, timezone

from nomad_notifier import __version__
from nomad_notifier.models.nomad import (
    Allocation,
    Deployment,
    TaskEvent,
    TaskEventType,
    TaskState,
)
from nomad_notifier.models.notification import (
    ActionConfirmation,
    Notification,
    NotificationAction,
    NotificationField,
    StatusColor,
)

MANUAL_PROMOTION_DESCRIPTION = "Deployment is running but requires manual promotion"
OOM_MARKER = "OOM"
DEFAULT_STALE_AFTER_SECONDS = 300.0

EVENT_SEPARATOR = "---------------------------------------------"

# Detail keys appended to an event line, per event type.
DETAIL_KEYS: dict[str, tuple[str, ...]] = {
    TaskEventType.TERMINATED.value: ("exit_code", "signal"),
    TaskEventType.KILLED.value: ("kill_reason", "kill_error", "kill_timeout"),
}

PROMOTION_ACTIONS: list[NotificationAction] = [
    NotificationAction(name="promote", text="Promote :heavy_check_mark:"),
    NotificationAction(
        name="fail",
        text="Fail :boom:",
        style="danger",
        confirm=ActionConfirmation(
            title="Are you sure?",
            text="This marks the deployment as failed.",
            ok_text="Fail",
            dismiss_text="Woops!",
        ),
    ),
]


def version_label() -> str:
    return f"nomad-notifier: {__version__}"


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


def deployment_url(ui_base_url: str, deployment: Deployment) -> str:
    return f"{ui_base_url}/ui/jobs/{deployment.job_id}/deployments"


def allocation_url(ui_base_url: str, allocation: Allocation) -> str:
    return f"{ui_base_url}/ui/allocations/{allocation.id}"


def task_group_url(ui_base_url: str, allocation: Allocation) -> str:
    return f"{ui_base_url}/ui/jobs/{allocation.job_id}/{allocation.task_group}"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def is_stale(
    allocation: Allocation,
    now: datetime | None = None,
    window_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
) -> bool:
    """Whether *allocation* was last modified more than *window_seconds* ago."""
    now = now or datetime.now(timezone.utc)
    return (now - allocation.modified_at).total_seconds() > window_seconds


def is_superseded(allocation: Allocation) -> bool:
    """Whether a successor allocation has already replaced this one."""
    return bool(allocation.next_allocation)


def allocation_skip_reason(
    allocation: Allocation,
    now: datetime | None = None,
    window_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
) -> str | None:
    """Return why *allocation* must not be announced, or ``None``.

    Old allocations and allocations already replaced by a successor are
    skipped so that restarts and reschedules do not re-announce them.
    """
    if is_stale(allocation, now=now, window_seconds=window_seconds):
        return "stale"
    if is_superseded(allocation):
        return "superseded"
    return None


def has_oom(task_state: TaskState) -> bool:
    """Whether any event of *task_state* reports an out-of-memory kill."""
    return any(OOM_MARKER in event.display_message for event in task_state.events)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_task_event(event: TaskEvent) -> str:
    """Render one task event as a single line.

    Terminated and killed events get their non-empty detail values
    appended as ``, key: value`` pairs.
    """
    line = f"*{event.type}*: {event.display_message} {event.detail('driver_message')}"
    for key in DETAIL_KEYS.get(event.type, ()):
        value = event.detail(key)
        if value:
            line += f", {key}: {value}"
    return line


def format_task_group_summary(deployment: Deployment, name: str) -> str:
    state = deployment.task_groups[name]
    return (
        f"Desired: {state.desired_total}, Placed: {state.placed_allocs}, "
        f"Healthy: {state.healthy_allocs}, Unhealthy: {state.unhealthy_allocs}, "
        f"DesiredCanaries: {state.desired_canaries}, "
        f"PlacedCanaries: [{' '.join(state.placed_canaries)}]"
    )


def format_deployment(deployment: Deployment, ui_base_url: str) -> Notification:
    """Build the notification for a deployment snapshot.

    Deployments are always notification-worthy.  Promote/fail buttons are
    attached only while the deployment waits for manual promotion.
    """
    color = StatusColor.for_status(deployment.status)
    url = deployment_url(ui_base_url, deployment)
    fields = [
        NotificationField(
            title=f"Task Group: {name}",
            body=format_task_group_summary(deployment, name),
            color=color,
        )
        for name in sorted(deployment.task_groups)
    ]
    actions = (
        list(PROMOTION_ACTIONS)
        if deployment.status_description == MANUAL_PROMOTION_DESCRIPTION
        else []
    )
    text = "\n".join(
        [
            "nomad deploy",
            deployment.status_description,
            f"{deployment.job_id} deployment update",
            f"url: {url}",
            f"Deploy ID: {deployment.id}",
            version_label(),
        ]
    )
    return Notification(
        text=text,
        fallback="deployment update",
        title=deployment.status_description,
        title_link=url,
        author=f"{deployment.job_id} deployment update",
        author_link=url,
        color=color,
        fields=fields,
        actions=actions,
        footer=f"{version_label()} | Deploy ID: {deployment.id}",
    )


def format_allocation(allocation: Allocation, ui_base_url: str) -> Notification:
    """Build the notification for an allocation snapshot.

    Only task states with an OOM event produce a field.  When none do, the
    returned notification is empty and must not be sent.
    """
    color = StatusColor.for_status(allocation.client_status)
    fields: list[NotificationField] = []
    for task_name in sorted(allocation.task_states):
        task_state = allocation.task_states[task_name]
        if not has_oom(task_state):
            continue
        lines = [EVENT_SEPARATOR]
        lines.extend(format_task_event(event) for event in task_state.events)
        fields.append(
            NotificationField(
                title=(
                    f"taskState:{task_state.state} Failed: {task_state.failed}, "
                    f"Restarts: {task_state.restarts} "
                    f"Task Group: {allocation.task_group} Task: {task_name}"
                ),
                body="\n".join(lines) + "\n",
                color=color,
            )
        )

    if not fields:
        return Notification()

    url = task_group_url(ui_base_url, allocation)
    text = "\n".join(
        [
            "nomad alloc",
            f"Allocation ID: {allocation.id}",
            f"{allocation.id} allocation update",
            f"url: {url}",
            version_label(),
        ]
    )
    return Notification(
        text=text,
        fallback="allocation update",
        title=allocation.client_description,
        title_link=url,
        author=f"{allocation.id} allocation update",
        author_link=allocation_url(ui_base_url, allocation),
        color=color,
        fields=fields,
        footer=f"{version_label()} | Allocation ID: {allocation.id}",
    )
