"""nomad-notifier CLI — Typer-based command-line interface.

Provides the ``nomad-notifier`` command with subcommands for running the
notifier, checking which sinks are enabled, and printing the version.

All output uses Rich for formatted terminal display.
"""
