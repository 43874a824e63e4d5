"""MessageTracker — remembers which chat message announced which entity.

Each sink owns one tracker per entity kind.  The first notification for an
entity records the handle the chat service returned; later notifications
edit that message instead of posting a new one.

Entries are never evicted.  Growth is bounded by the number of live jobs
and allocations in the cluster.  State is in-memory only, so a restart
forgets every handle and the next update for a known entity posts a fresh
message.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class MessageTracker:
    """Thread-safe mapping of entity ID to chat message handle.

    Parameters
    ----------
    kind:
        Label for the tracked entity kind (``"deployment"``,
        ``"allocation"``), used in log output only.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._handles: dict[str, str] = {}
        self._lock = threading.RLock()

    def lookup(self, entity_id: str) -> str | None:
        """Return the recorded handle for *entity_id*, or ``None``.

        An empty handle counts as absent.
        """
        with self._lock:
            return self._handles.get(entity_id) or None

    def record(self, entity_id: str, handle: str) -> None:
        """Store *handle* for *entity_id*, replacing any previous handle."""
        with self._lock:
            self._handles[entity_id] = handle

    @contextmanager
    def locked(self) -> Iterator[MessageTracker]:
        """Hold the tracker lock for a whole lookup-send-record sequence.

        The lock is re-entrant, so ``lookup`` and ``record`` may be called
        inside the block.
        """
        with self._lock:
            yield self

    def __contains__(self, entity_id: object) -> bool:
        with self._lock:
            return bool(self._handles.get(entity_id))  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __repr__(self) -> str:
        return f"MessageTracker(kind={self.kind!r}, entries={len(self)})"
