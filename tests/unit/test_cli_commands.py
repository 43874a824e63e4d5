"""Unit tests for the CLI — Typer command registration and basic behavior."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from nomad_notifier import __version__
from nomad_notifier.cli.app import app
from nomad_notifier.routing.sinks.discord import DiscordSink

runner = CliRunner()

SINK_ENV = ("SLACK_TOKEN", "SLACK_CHANNEL", "DISCORD_WEBHOOK_URL")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Run every command without inherited sink credentials or .env file."""
    for name in SINK_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestCliApp:
    def test_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "check" in result.output
        assert "version" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_run_command_exists(self):
        result = runner.invoke(app, ["run", "--help"])
        assert result.exit_code == 0
        assert "--index" in result.output


class TestCheckCommand:
    def test_no_sinks_exits_with_error(self):
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 1
        assert "No sinks enabled" in result.output

    def test_reports_enabled_sinks(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert "discord" in result.output
        assert "enabled" in result.output

    def test_closes_the_sinks_it_builds(self, monkeypatch):
        closed: list[str] = []
        monkeypatch.setattr(DiscordSink, "close", lambda sink: closed.append(sink.sink_name))
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert closed == ["discord"]


class TestRunCommand:
    def test_no_sinks_exits_with_error(self):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1

    def test_unreachable_nomad_exits_with_error(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        monkeypatch.setenv("NOMAD_ADDR", "http://127.0.0.1:1")
        monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "1")
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1
