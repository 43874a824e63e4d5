"""StreamConsumer — the long-lived receive loop feeding the dispatcher.

The consumer subscribes to the Deployment and Allocation topics starting
at the newest index, so a restart never replays history (events emitted
while the process was down are missed instead).  It then loops until its
stop event is set:

- error batch: logged, loop continues;
- heartbeat: ignored;
- events: each is decoded by topic and upserted through the dispatcher.
  A decode failure skips that one event; a dispatch failure is logged.

Only a failure to establish the subscription escapes ``run``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Protocol

from pydantic import ValidationError

from nomad_notifier.models.nomad import Allocation, Deployment, Event, EventBatch, Topic
from nomad_notifier.routing.dispatcher import DispatchError
from nomad_notifier.stream.source import EventSource

logger = logging.getLogger(__name__)

DEFAULT_TOPICS: dict[str, list[str]] = {
    Topic.DEPLOYMENT.value: ["*"],
    Topic.ALLOCATION.value: ["*"],
}

# Nomad starts at the next available index when the requested one is
# beyond its buffer, i.e. at the newest event.
LATEST_INDEX = 2**63 - 1

DEFAULT_IDLE_WAIT = 0.1


class EventDecodeError(ValueError):
    """Raised when an event payload cannot be decoded into a snapshot."""


class Dispatcher(Protocol):
    def upsert_deployment(self, deployment: Deployment) -> list[str]:
        ...

    def upsert_allocation(self, allocation: Allocation) -> list[str]:
        ...


def decode_event(event: Event) -> Deployment | Allocation | None:
    """Decode *event*'s payload into the snapshot its topic carries.

    Returns ``None`` for topics the notifier does not handle.

    Raises
    ------
    EventDecodeError
        If the payload is missing or does not validate.
    """
    if event.topic == Topic.DEPLOYMENT.value:
        model: type[Deployment] | type[Allocation] = Deployment
    elif event.topic == Topic.ALLOCATION.value:
        model = Allocation
    else:
        return None

    data = event.payload.get(event.topic)
    if not data:
        raise EventDecodeError(
            f"{event.topic} event {event.key!r} has no {event.topic} payload"
        )
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise EventDecodeError(
            f"decode payload as {event.topic} failed: {exc}"
        ) from exc


class StreamConsumer:
    """Receives event batches and forwards decoded snapshots.

    Parameters
    ----------
    source:
        Event source to subscribe to.
    dispatcher:
        Receives every decoded deployment and allocation.
    topics:
        Topic-to-key-filter mapping for the subscription.
    start_index:
        Stream index to start from; defaults to the newest event.
    idle_wait:
        Seconds to wait for a batch before checking the stop event again.
    """

    def __init__(
        self,
        source: EventSource,
        dispatcher: Dispatcher,
        topics: Mapping[str, Sequence[str]] | None = None,
        start_index: int = LATEST_INDEX,
        idle_wait: float = DEFAULT_IDLE_WAIT,
        log: logging.Logger | None = None,
    ) -> None:
        self._source = source
        self._dispatcher = dispatcher
        self._topics = dict(topics or DEFAULT_TOPICS)
        self._start_index = start_index
        self._idle_wait = idle_wait
        self._log = log or logger

    def run(self, stop: threading.Event) -> None:
        """Consume the stream until *stop* is set.

        Raises
        ------
        SubscriptionError
            If the subscription cannot be established.
        """
        subscription = self._source.subscribe(self._topics, self._start_index)
        try:
            while not stop.is_set():
                batch = subscription.receive(timeout=self._idle_wait)
                if batch is None:
                    continue
                self.handle_batch(batch)
        finally:
            subscription.close()
        self._log.info("Event stream consumer stopped")

    def handle_batch(self, batch: EventBatch) -> None:
        if batch.error is not None:
            self._log.warning("Error from event stream: %s", batch.error)
            return
        if batch.is_heartbeat:
            self._log.debug("Got heartbeat")
            return
        for event in batch.events:
            self.handle_event(event)

    def handle_event(self, event: Event) -> None:
        self._log.debug(
            "Got event topic=%s type=%s key=%s index=%d",
            event.topic,
            event.type,
            event.key,
            event.index,
        )
        try:
            snapshot = decode_event(event)
        except EventDecodeError as exc:
            self._log.error("Skipping event at index %d: %s", event.index, exc)
            return
        if snapshot is None:
            return

        try:
            if isinstance(snapshot, Deployment):
                self._dispatcher.upsert_deployment(snapshot)
            else:
                self._dispatcher.upsert_allocation(snapshot)
        except DispatchError as exc:
            self._log.warning(
                "Dispatch failed for %s %s: %s", event.topic, snapshot.id, exc
            )
