"""Nomad event-stream subscription over httpx.

``GET /v1/event/stream`` answers with newline-delimited JSON frames that
never end: each line is either ``{}`` (a heartbeat) or
``{"Index": N, "Events": [...]}``.  ``NomadEventSource.subscribe`` opens
that stream synchronously, so a bad address or token fails immediately,
then hands the response to a daemon reader thread which parses frames onto
a bounded queue.  The consumer pulls from the queue with a bounded wait.

When the stream breaks mid-flight the reader queues an error batch, waits
``retry_interval`` seconds and resumes from the last index it saw.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from nomad_notifier.models.nomad import Event, EventBatch

logger = logging.getLogger(__name__)

STREAM_PATH = "/v1/event/stream"


class SubscriptionError(RuntimeError):
    """Raised when the event stream cannot be established."""


@runtime_checkable
class EventSubscription(Protocol):
    """An open event stream."""

    def receive(self, timeout: float) -> EventBatch | None:
        """Return the next batch, or ``None`` if none arrived in *timeout*."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class EventSource(Protocol):
    """Anything that can open an event stream over a set of topics."""

    def subscribe(
        self, topics: Mapping[str, Sequence[str]], index: int
    ) -> EventSubscription:
        ...


def _query_params(
    topics: Mapping[str, Sequence[str]], index: int, namespace: str
) -> list[tuple[str, str]]:
    params = [
        ("topic", f"{topic}:{key}")
        for topic, keys in topics.items()
        for key in keys
    ]
    params.append(("index", str(index)))
    if namespace:
        params.append(("namespace", namespace))
    return params


class NomadEventSource:
    """Opens subscriptions against a Nomad agent's event stream.

    Parameters
    ----------
    address:
        Nomad HTTP API address, e.g. ``http://127.0.0.1:4646``.
    token:
        ACL token sent as ``X-Nomad-Token``; omitted when empty.
    namespace:
        Namespace filter; ``"*"`` streams all namespaces.
    client:
        Pre-built ``httpx.Client``.  When omitted a client with no read
        timeout is created, since the stream idles between heartbeats.
    retry_interval:
        Seconds to wait before resuming a broken stream.
    """

    def __init__(
        self,
        address: str,
        token: str = "",
        namespace: str = "",
        client: httpx.Client | None = None,
        connect_timeout: float = 10.0,
        retry_interval: float = 1.0,
        queue_size: int = 256,
    ) -> None:
        self._address = address.rstrip("/")
        self._namespace = namespace
        self._retry_interval = retry_interval
        self._queue_size = queue_size
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(connect_timeout, read=None)
        )
        if token:
            self._client.headers["X-Nomad-Token"] = token

    @property
    def address(self) -> str:
        return self._address

    def close(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client:
            self._client.close()

    def subscribe(
        self, topics: Mapping[str, Sequence[str]], index: int
    ) -> NomadSubscription:
        """Open the event stream starting at *index*.

        Raises
        ------
        SubscriptionError
            If the agent is unreachable or rejects the request.
        """
        response = self.open_stream(topics, index)
        logger.info(
            "Subscribed to %s topics=%s index=%d",
            self._address,
            sorted(topics),
            index,
        )
        return NomadSubscription(
            self,
            topics,
            index,
            response,
            retry_interval=self._retry_interval,
            queue_size=self._queue_size,
        )

    def open_stream(
        self, topics: Mapping[str, Sequence[str]], index: int
    ) -> httpx.Response:
        request = self._client.build_request(
            "GET",
            f"{self._address}{STREAM_PATH}",
            params=_query_params(topics, index, self._namespace),
        )
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise SubscriptionError(
                f"cannot reach event stream at {self._address}: {exc}"
            ) from exc

        if response.status_code >= 300:
            try:
                body = response.read().decode("utf-8", errors="replace")
            except httpx.HTTPError as exc:
                body = f"<unreadable body: {exc}>"
            finally:
                response.close()
            raise SubscriptionError(
                f"event stream request failed, code={response.status_code}: {body}"
            )
        return response


class NomadSubscription:
    """A live event stream read by a background thread."""

    def __init__(
        self,
        source: NomadEventSource,
        topics: Mapping[str, Sequence[str]],
        index: int,
        response: httpx.Response,
        retry_interval: float = 1.0,
        queue_size: int = 256,
    ) -> None:
        self._source = source
        self._topics = dict(topics)
        self._start_index = index
        self._last_index = 0
        self._response: httpx.Response | None = response
        self._retry_interval = retry_interval
        self._queue: queue.Queue[EventBatch] = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()
        self._thread = threading.Thread(
            target=self._read_loop, name="nomad-event-stream", daemon=True
        )
        self._thread.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def receive(self, timeout: float) -> EventBatch | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        response = self._response
        if response is not None:
            response.close()
        self._thread.join(timeout=1.0)

    # ------------------------------------------------------------------
    # Reader thread
    # ------------------------------------------------------------------

    def _resume_index(self) -> int:
        return self._last_index + 1 if self._last_index else self._start_index

    def _offer(self, batch: EventBatch) -> None:
        while not self._closed.is_set():
            try:
                self._queue.put(batch, timeout=0.5)
                return
            except queue.Full:
                continue

    def _read_loop(self) -> None:
        while not self._closed.is_set():
            response = self._response
            if response is None:
                try:
                    response = self._source.open_stream(
                        self._topics, self._resume_index()
                    )
                except Exception as exc:  # noqa: BLE001 - reported as an error batch
                    self._offer(EventBatch(error=exc))
                    self._closed.wait(self._retry_interval)
                    continue
                self._response = response
                logger.info("Event stream resumed at index %d", self._resume_index())

            try:
                self._read_frames(response)
                error: Exception = SubscriptionError("event stream closed by server")
            except Exception as exc:  # noqa: BLE001 - reported as an error batch
                error = exc
            finally:
                response.close()
                self._response = None

            if self._closed.is_set():
                return
            self._offer(EventBatch(error=error))
            self._closed.wait(self._retry_interval)

    def _read_frames(self, response: httpx.Response) -> None:
        for line in response.iter_lines():
            if self._closed.is_set():
                return
            if not line.strip():
                continue
            try:
                batch = self._parse_frame(line)
            except ValueError as exc:
                self._offer(EventBatch(error=exc))
                continue
            if batch.index:
                self._last_index = batch.index
            self._offer(batch)

    def _parse_frame(self, line: str) -> EventBatch:
        """Parse one NDJSON frame, dropping only the events that do not validate.

        Raises ``ValueError`` when the frame itself is not a JSON object
        with a usable ``Index``.
        """
        frame = json.loads(line)
        if not isinstance(frame, dict):
            raise ValueError(f"event frame must be a JSON object, got {type(frame).__name__}")

        events: list[Event] = []
        for position, raw in enumerate(frame.get("Events") or []):
            try:
                events.append(Event.model_validate(raw))
            except ValidationError as exc:
                logger.error(
                    "Dropping malformed event %d of frame at index %s: %s",
                    position,
                    frame.get("Index"),
                    exc,
                )
        return EventBatch.model_validate({"Index": frame.get("Index", 0), "Events": events})
