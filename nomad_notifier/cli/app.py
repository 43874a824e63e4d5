"""Main Typer application — imports and registers all CLI commands.

Entry point: ``nomad-notifier`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer
from rich.console import Console

from nomad_notifier import __version__
from nomad_notifier.cli.commands.check import check_cmd
from nomad_notifier.cli.commands.run import run_cmd

app = typer.Typer(
    name="nomad-notifier",
    help="Republish Nomad deployment and allocation events to Slack and Discord.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="run", help="Consume the event stream and notify sinks.")(run_cmd)
app.command(name="check", help="Show which sinks are enabled.")(check_cmd)


@app.command(name="version", help="Print the notifier version.")
def version_cmd() -> None:
    Console().print(f"nomad-notifier [green]{__version__}[/green]")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
