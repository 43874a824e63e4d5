"""``nomad-notifier run`` — consume the event stream until interrupted.

Builds every sink whose credentials are configured, subscribes to the Nomad
event stream at the newest index and forwards deployments and allocations
until SIGINT or SIGTERM.  Exits with code 1 when no sink is enabled or the
stream cannot be established.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.logging import RichHandler

from nomad_notifier.config import NotifierConfig
from nomad_notifier.routing.dispatcher import NoSinksEnabledError, NotificationDispatcher
from nomad_notifier.stream.consumer import LATEST_INDEX, StreamConsumer
from nomad_notifier.stream.source import NomadEventSource, SubscriptionError

console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route all log records through a Rich handler at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@contextmanager
def stop_on_signals(stop: threading.Event) -> Iterator[threading.Event]:
    """Set *stop* on SIGINT/SIGTERM, restoring previous handlers on exit."""

    def _handler(signum: int, _frame: object) -> None:
        logging.getLogger(__name__).info(
            "Received %s, shutting down", signal.Signals(signum).name
        )
        stop.set()

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield stop
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_cmd(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (overrides LOG_LEVEL).",
    ),
    index: int = typer.Option(
        LATEST_INDEX,
        "--index",
        help="Event index to start from.  Defaults to the newest event.",
    ),
) -> None:
    """Forward Nomad deployment and allocation events to chat."""
    config = NotifierConfig()
    configure_logging(log_level or config.log_level)
    log = logging.getLogger("nomad_notifier")

    try:
        dispatcher = NotificationDispatcher.from_config(config)
    except NoSinksEnabledError as exc:
        console.print(f"[bold red]No sinks enabled:[/bold red] {exc}")
        raise typer.Exit(code=1)

    source = NomadEventSource(
        config.nomad_addr,
        token=config.nomad_token,
        namespace=config.nomad_namespace,
        connect_timeout=config.http_timeout_seconds,
    )
    consumer = StreamConsumer(
        source,
        dispatcher,
        start_index=index,
        idle_wait=config.poll_interval_seconds,
    )

    log.info(
        "Starting consumer: nomad=%s sinks=%s",
        config.nomad_addr,
        ", ".join(dispatcher.sink_names),
    )
    with stop_on_signals(threading.Event()) as stop:
        try:
            consumer.run(stop)
        except SubscriptionError as exc:
            console.print(f"[bold red]Cannot subscribe to event stream:[/bold red] {exc}")
            raise typer.Exit(code=1)
        finally:
            source.close()
            dispatcher.close()
