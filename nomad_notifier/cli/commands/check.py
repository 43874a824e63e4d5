"""``nomad-notifier check`` — show which sinks the configuration enables."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from nomad_notifier.config import NotifierConfig
from nomad_notifier.routing.dispatcher import SINK_FACTORIES, build_sinks

console = Console()


def check_cmd() -> None:
    """Report the Nomad address and the enabled sinks.

    Exits with code 1 when no sink is enabled.
    """
    config = NotifierConfig()
    sinks = build_sinks(config)
    try:
        enabled = {sink.sink_name for sink in sinks}
    finally:
        for sink in sinks:
            sink.close()

    table = Table(title="nomad-notifier configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Nomad address", config.nomad_addr)
    table.add_row("UI links", config.ui_base_url)
    table.add_row("Namespace", config.nomad_namespace or "[dim]default[/dim]")
    for name, _ in SINK_FACTORIES:
        status = "[green]enabled[/green]" if name in enabled else "[dim]disabled[/dim]"
        table.add_row(f"Sink: {name}", status)
    console.print(table)

    if not enabled:
        console.print(
            "[bold red]No sinks enabled.[/bold red] "
            "Set SLACK_TOKEN and SLACK_CHANNEL, or DISCORD_WEBHOOK_URL."
        )
        raise typer.Exit(code=1)
