"""Sink protocol and shared upsert machinery for notification sinks.

All sinks implement the ``NotificationSink`` protocol: a ``sink_name``
property plus ``upsert_deployment`` and ``upsert_allocation``.  The
dispatcher calls both methods on every enabled sink.

``UpsertSink`` carries the create-or-edit algorithm; concrete sinks only
supply rendering and the two HTTP calls.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Protocol, runtime_checkable

import httpx

from nomad_notifier.models.nomad import Allocation, Deployment
from nomad_notifier.models.notification import Notification
from nomad_notifier.routing.sinks._formatting import (
    DEFAULT_STALE_AFTER_SECONDS,
    allocation_skip_reason,
    format_allocation,
    format_deployment,
)
from nomad_notifier.routing.tracker import MessageTracker

logger = logging.getLogger(__name__)


class SinkNotEnabledError(RuntimeError):
    """Raised by a sink factory when its required configuration is missing.

    The composition layer treats this as "skip this sink", not a failure.
    """


class SinkDeliveryError(RuntimeError):
    """Raised when a chat service rejects or fails a create/update call."""

    def __init__(self, sink_name: str, message: str) -> None:
        super().__init__(f"{sink_name}: {message}")
        self.sink_name = sink_name


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol that every notification sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier (``"slack"``, ``"discord"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def upsert_deployment(self, deployment: Deployment) -> None:
        """Create or edit the message announcing *deployment*."""
        ...

    def upsert_allocation(self, allocation: Allocation) -> None:
        """Create or edit the message announcing *allocation*, if worthy."""
        ...

    def close(self) -> None:
        """Release any resources held by the sink."""
        ...


class UpsertSink(ABC):
    """Base class implementing upsert semantics over a chat service.

    For every entity the first notification-worthy snapshot posts a new
    message and records the returned handle; later snapshots edit the
    message behind that handle and record whatever handle the edit
    returns.  Each entity kind has its own ``MessageTracker``, whose lock
    is held for the whole lookup-render-send-record sequence.

    Parameters
    ----------
    ui_base_url:
        Base URL of the Nomad UI, used for deep links.
    client:
        Pre-built ``httpx.Client``; one is created, and owned, when omitted.
    stale_after_seconds:
        Allocations modified longer ago than this are not announced.
    clock:
        Returns the current aware datetime; injectable for tests.
    log:
        Logger to use instead of the module logger.
    """

    def __init__(
        self,
        ui_base_url: str,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._ui_base_url = ui_base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._stale_after_seconds = stale_after_seconds
        self._clock = clock
        self._log = log or logger.getChild(self.sink_name)
        self.deployments = MessageTracker("deployment")
        self.allocations = MessageTracker("allocation")

    @property
    @abstractmethod
    def sink_name(self) -> str:
        ...

    def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    def upsert_deployment(self, deployment: Deployment) -> None:
        notification = format_deployment(deployment, self._ui_base_url)
        self._upsert(self.deployments, deployment.id, notification)

    def upsert_allocation(self, allocation: Allocation) -> None:
        now = self._clock() if self._clock else None
        reason = allocation_skip_reason(
            allocation, now=now, window_seconds=self._stale_after_seconds
        )
        if reason:
            self._log.debug("Skipping %s allocation %s", reason, allocation.id)
            return
        notification = format_allocation(allocation, self._ui_base_url)
        self._upsert(self.allocations, allocation.id, notification)

    def _upsert(
        self,
        tracker: MessageTracker,
        entity_id: str,
        notification: Notification,
    ) -> None:
        with tracker.locked():
            if notification.is_empty:
                self._log.debug(
                    "Nothing to announce for %s %s", tracker.kind, entity_id
                )
                return

            handle = tracker.lookup(entity_id)
            if handle is None:
                self._log.debug(
                    "No existing message for %s %s, creating", tracker.kind, entity_id
                )
                new_handle = self.create_message(self.render(notification))
            else:
                self._log.debug(
                    "Existing message %s for %s %s, updating",
                    handle,
                    tracker.kind,
                    entity_id,
                )
                new_handle = self.update_message(handle, self.render(notification))

            tracker.record(entity_id, new_handle)
            self._log.info(
                "Upserted %s %s as message %s", tracker.kind, entity_id, new_handle
            )

    # ------------------------------------------------------------------
    # Channel-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def render(self, notification: Notification) -> dict[str, Any]:
        """Translate *notification* into the channel's request body."""

    @abstractmethod
    def create_message(self, body: dict[str, Any]) -> str:
        """Post a new message and return its handle."""

    @abstractmethod
    def update_message(self, handle: str, body: dict[str, Any]) -> str:
        """Edit the message behind *handle* and return the handle to keep."""
