"""Runtime configuration — env-driven.

Centralized config using pydantic-settings.  Reads from a ``.env`` file and
the process environment.  Variables carry no prefix so the names Nomad and
the chat tooling already use (``NOMAD_ADDR``, ``SLACK_TOKEN``, ...) work
unchanged.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class NotifierConfig(BaseSettings):
    """Notifier configuration with environment variable overrides.

    A sink is enabled only when its credentials are present: Slack needs
    both ``SLACK_TOKEN`` and ``SLACK_CHANNEL``, Discord needs
    ``DISCORD_WEBHOOK_URL``.

    Examples
    --------
    Override via environment::

        export NOMAD_ADDR=https://nomad.example.com:4646
        export SLACK_TOKEN=xoxb-...
        export SLACK_CHANNEL=C0123456
        export LOG_LEVEL=DEBUG

    Or via .env file::

        DISCORD_WEBHOOK_URL=https://discord.com/api/webhooks/123/abc
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nomad
    nomad_addr: str = "http://127.0.0.1:4646"
    nomad_token: str = ""
    nomad_namespace: str = ""
    nomad_ui_url: str = ""  # deep-link base, falls back to nomad_addr

    # Slack
    slack_token: str = ""
    slack_channel: str = ""

    # Discord
    discord_webhook_url: str = ""

    # Behaviour
    log_level: str = "INFO"
    stale_after_seconds: float = 300.0
    poll_interval_seconds: float = 0.1
    http_timeout_seconds: float = 10.0

    @property
    def ui_base_url(self) -> str:
        """Base URL used for deep links into the Nomad UI."""
        return (self.nomad_ui_url or self.nomad_addr).rstrip("/")
