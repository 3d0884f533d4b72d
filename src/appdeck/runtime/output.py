"""Typed output events from running apps and their delivery to observers.

Events are delivered to whoever is subscribed at publish time. Nothing is
buffered: output emitted before a subscriber attaches is not replayed.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# CSI sequences, OSC sequences (BEL or ST terminated) and two-byte escapes.
_VT_SEQUENCE_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
    r"|\x9b[0-?]*[ -/]*[@-~]"
)


def strip_control_sequences(text: str) -> str:
    """Remove ANSI/VT terminal control sequences from *text*."""
    return _VT_SEQUENCE_RE.sub("", text)


class OutputType(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    INFO = "info"
    CLIENT_ERROR = "client-error"


@dataclass(frozen=True)
class OutputEvent:
    """One line of process output or a lifecycle notice for an app."""

    type: OutputType
    message: str
    app_id: int
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))  # epoch ms

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "appId": self.app_id,
            "timestamp": self.timestamp,
        }


OutputCallback = Callable[[OutputEvent], None]


class Subscription:
    """Handle returned by OutputBroadcaster.subscribe(); close() detaches it."""

    def __init__(self, broadcaster: OutputBroadcaster, token: int) -> None:
        self._broadcaster = broadcaster
        self._token = token
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._broadcaster._unsubscribe(self._token)
            self.closed = True

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class OutputBroadcaster:
    """Fan out OutputEvents to the current subscribers.

    A subscriber registered with an ``app_id`` only sees that app's events.
    A subscriber that raises is logged and skipped; the others still receive
    the event.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[int, tuple[int | None, OutputCallback]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, callback: OutputCallback, app_id: int | None = None) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = (app_id, callback)
        return Subscription(self, token)

    def _unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    def publish(self, event: OutputEvent) -> int:
        """Deliver *event* and return how many subscribers received it."""
        with self._lock:
            targets = [
                cb for app_id, cb in self._subscribers.values()
                if app_id is None or app_id == event.app_id
            ]
        delivered = 0
        for callback in targets:
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception("Output subscriber failed for app %s", event.app_id)
        return delivered

    def emit(self, app_id: int, type: OutputType, message: str) -> OutputEvent:
        """Build, publish and return an event."""
        event = OutputEvent(type=type, message=message, app_id=app_id)
        self.publish(event)
        return event
