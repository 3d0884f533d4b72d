"""Per-key mutual exclusion with FIFO ordering.

Operations submitted for the same key run one at a time, in the order they
asked for the lock. Different keys never block each other. There is no
timeout: an operation that hangs blocks every later operation on its key.
The lock is not re-entrant.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from typing import TypeVar

T = TypeVar("T")


class _KeyQueue:
    """Ticket dispenser for one key."""

    __slots__ = ("cond", "next_ticket", "serving", "users")

    def __init__(self) -> None:
        self.cond = threading.Condition()
        self.next_ticket = 0
        self.serving = 0
        self.users = 0


class KeyLock:
    """Serialise operations that share a resource identified by a key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._queues: dict[Hashable, _KeyQueue] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Block until *key* is ours, yield, then hand it to the next waiter."""
        with self._guard:
            queue = self._queues.get(key)
            if queue is None:
                queue = self._queues[key] = _KeyQueue()
            ticket = queue.next_ticket
            queue.next_ticket += 1
            queue.users += 1

        with queue.cond:
            while queue.serving != ticket:
                queue.cond.wait()
        try:
            yield
        finally:
            with queue.cond:
                queue.serving += 1
                queue.cond.notify_all()
            with self._guard:
                queue.users -= 1
                if queue.users == 0:
                    del self._queues[key]

    def run(self, key: Hashable, operation: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Run ``operation(*args, **kwargs)`` while holding *key* and return its result."""
        with self.hold(key):
            return operation(*args, **kwargs)

    def is_held(self, key: Hashable) -> bool:
        """True while some operation holds or waits for *key*."""
        with self._guard:
            return key in self._queues
