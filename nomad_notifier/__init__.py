"""nomad-notifier: announce Nomad deployments and OOM kills in chat.

Consumes the Nomad event stream and keeps one chat message per deployment
or allocation up to date on every configured sink:
  - Slack via the Web API (chat.postMessage / chat.update)
  - Discord via webhooks (execute / edit message)
  - Deployments always announced, with promote/fail buttons on Slack
  - Allocations announced only when a task was OOM-killed
"""

__version__ = "0.5.0"
__description__ = "Republish Nomad deployment and allocation events to Slack and Discord"

from nomad_notifier.routing.dispatcher import NotificationDispatcher
from nomad_notifier.stream.consumer import StreamConsumer

__all__ = ["NotificationDispatcher", "StreamConsumer", "__version__"]
