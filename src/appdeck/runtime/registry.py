"""Table of running dev-server processes, one entry per app id."""

from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class RunningAppEntry:
    """A spawned process and the generation it was registered under."""

    handle: subprocess.Popen
    generation: int

    @property
    def alive(self) -> bool:
        return self.handle.poll() is None


class ProcessRegistry:
    """Owned map of app id → RunningAppEntry.

    Writes normally happen inside the app's key-lock section. The process
    close/error callbacks run on other threads and only ever use the
    compare-and-delete methods, which are atomic under the registry's own lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, RunningAppEntry] = {}
        self._generation = 0

    def register(self, app_id: int, handle: subprocess.Popen) -> int:
        """Store *handle* for *app_id* under a fresh generation and return it.

        Raises:
            ValueError: If *app_id* already has an entry.
        """
        with self._lock:
            if app_id in self._entries:
                raise ValueError(f"App {app_id} already has a registered process")
            self._generation += 1
            self._entries[app_id] = RunningAppEntry(handle=handle, generation=self._generation)
            return self._generation

    def lookup(self, app_id: int) -> RunningAppEntry | None:
        with self._lock:
            return self._entries.get(app_id)

    def unregister_if_current(self, app_id: int, handle: subprocess.Popen) -> bool:
        """Remove the entry only if it still holds this exact *handle*.

        A late close event from a superseded process therefore cannot erase
        the entry of the process that replaced it.
        """
        with self._lock:
            entry = self._entries.get(app_id)
            if entry is not None and entry.handle is handle:
                del self._entries[app_id]
                return True
            return False

    def unregister_generation(self, app_id: int, generation: int) -> bool:
        """Remove the entry only if it was registered under *generation*."""
        with self._lock:
            entry = self._entries.get(app_id)
            if entry is not None and entry.generation == generation:
                del self._entries[app_id]
                return True
            return False

    @property
    def current_generation(self) -> int:
        with self._lock:
            return self._generation

    def app_ids(self) -> list[int]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, app_id: object) -> bool:
        with self._lock:
            return app_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
