"""NotificationDispatcher — fans every upsert out to ALL enabled sinks.

Every snapshot passed to the dispatcher reaches every sink, one sink at a
time, in a fixed order.  A failure in one sink never stops the others; all
failures are collected and raised together as a ``DispatchError``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from nomad_notifier.config import NotifierConfig
from nomad_notifier.models.nomad import Allocation, Deployment
from nomad_notifier.routing.sinks import SinkNotEnabledError
from nomad_notifier.routing.sinks.discord import DiscordSink
from nomad_notifier.routing.sinks.slack import SlackSink

if TYPE_CHECKING:
    from nomad_notifier.routing.sinks import NotificationSink

logger = logging.getLogger(__name__)

SinkFactory = Callable[[NotifierConfig], "NotificationSink"]

# Tagged sink variants, tried in this order.
SINK_FACTORIES: list[tuple[str, SinkFactory]] = [
    ("slack", SlackSink.from_config),
    ("discord", DiscordSink.from_config),
]


class DispatchError(RuntimeError):
    """Raised when one or more sinks fail during a dispatch.

    ``failures`` lists ``(sink_name, exception)`` pairs in sink order so
    callers can tell exactly which sinks failed.
    """

    def __init__(self, failures: Sequence[tuple[str, Exception]]) -> None:
        self.failures = list(failures)
        super().__init__(
            f"{len(self.failures)} sink(s) failed: "
            + "; ".join(f"{name}: {exc}" for name, exc in self.failures)
        )

    @property
    def failed_sinks(self) -> list[str]:
        return [name for name, _ in self.failures]


class NoSinksEnabledError(RuntimeError):
    """Raised when no sink is configured; at least one is required."""


def build_sinks(
    config: NotifierConfig,
    factories: Iterable[tuple[str, SinkFactory]] = SINK_FACTORIES,
    log: logging.Logger | None = None,
) -> list[NotificationSink]:
    """Construct every sink whose configuration is present.

    Factories raising ``SinkNotEnabledError`` are skipped.  Any other
    exception propagates.
    """
    log = log or logger
    sinks: list[NotificationSink] = []
    for name, factory in factories:
        try:
            sink = factory(config)
        except SinkNotEnabledError as exc:
            log.info("Sink %s not enabled: %s", name, exc)
            continue
        log.info("Sink %s enabled", name)
        sinks.append(sink)
    return sinks


class NotificationDispatcher:
    """Routes entity snapshots to ALL enabled sinks.

    Usage
    -----
    >>> dispatcher = NotificationDispatcher([slack_sink, discord_sink])
    >>> dispatcher.upsert_deployment(deployment)
    ['slack', 'discord']
    """

    def __init__(
        self,
        sinks: Iterable[NotificationSink],
        log: logging.Logger | None = None,
    ) -> None:
        self._sinks: list[NotificationSink] = list(sinks)
        self._log = log or logger
        if not self._sinks:
            raise NoSinksEnabledError(
                "no notification sink is enabled; configure Slack or Discord"
            )

    @classmethod
    def from_config(
        cls,
        config: NotifierConfig,
        factories: Iterable[tuple[str, SinkFactory]] = SINK_FACTORIES,
        log: logging.Logger | None = None,
    ) -> NotificationDispatcher:
        return cls(build_sinks(config, factories, log=log), log=log)

    @property
    def sinks(self) -> list[NotificationSink]:
        """Return a copy of the enabled sink list."""
        return list(self._sinks)

    @property
    def sink_names(self) -> list[str]:
        return [sink.sink_name for sink in self._sinks]

    def close(self) -> None:
        """Close every sink, logging instead of raising on failure."""
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as exc:  # noqa: BLE001
                self._log.warning("Closing sink %s failed: %s", sink.sink_name, exc)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def upsert_deployment(self, deployment: Deployment) -> list[str]:
        """Create or edit the deployment message on every sink.

        Returns the names of the sinks that succeeded.

        Raises
        ------
        DispatchError
            If any sink failed.  The remaining sinks were still called.
        """
        return self._fan_out(
            f"deployment {deployment.id}",
            lambda sink: sink.upsert_deployment(deployment),
        )

    def upsert_allocation(self, allocation: Allocation) -> list[str]:
        """Create or edit the allocation message on every sink.

        Same contract as ``upsert_deployment``.
        """
        return self._fan_out(
            f"allocation {allocation.id}",
            lambda sink: sink.upsert_allocation(allocation),
        )

    def _fan_out(
        self,
        subject: str,
        call: Callable[[NotificationSink], None],
    ) -> list[str]:
        succeeded: list[str] = []
        failures: list[tuple[str, Exception]] = []

        for sink in self._sinks:
            try:
                call(sink)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                self._log.error(
                    "Sink %s failed for %s: %s", sink.sink_name, subject, exc
                )
                failures.append((sink.sink_name, exc))

        if failures:
            raise DispatchError(failures)
        return succeeded
