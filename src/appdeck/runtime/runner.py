"""Start, stop and restart app dev servers.

Every lifecycle operation holds the app's key in the KeyLock, so run, stop
and restart for one app execute one at a time in submission order. ``run``
returns once the process is spawned and registered; the dev server keeps
starting up afterwards and is only observable through output events.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import IO

from appdeck.config import DevServerCfg
from appdeck.db.repository import Repository
from appdeck.errors import AppDeckError, NotFoundError, SpawnError, TerminationError
from appdeck.paths import resolve_app_path
from appdeck.results import OperationResult
from appdeck.runtime.key_lock import KeyLock
from appdeck.runtime.output import OutputBroadcaster, OutputType, strip_control_sequences
from appdeck.runtime.ports import free_port
from appdeck.runtime.process import kill_process
from appdeck.runtime.registry import ProcessRegistry, RunningAppEntry

logger = logging.getLogger(__name__)


class AppStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


def build_dev_command(dev_server: DevServerCfg) -> str:
    """Return the shell command that installs dependencies and starts the dev server.

    Package managers missing from PATH are skipped; the remaining ones are
    chained with ``||`` so a failing primary falls back to the next one.

    Raises:
        SpawnError: If none of the configured package managers is available.
    """
    port = str(dev_server.port)
    segments: list[str] = []
    for pm in dev_server.package_managers:
        if shutil.which(pm.name) is None:
            logger.debug("Package manager '%s' not found on PATH", pm.name)
            continue
        steps = [step.replace("{port}", port) for step in (pm.install, pm.dev) if step]
        segments.append("(" + " && ".join(steps) + ")")
    if not segments:
        tried = ", ".join(pm.name for pm in dev_server.package_managers)
        raise SpawnError(f"No package manager available (tried: {tried})")
    return " || ".join(segments)


def _close_pipes(handle: subprocess.Popen) -> None:
    for stream in (handle.stdout, handle.stderr):
        if stream is not None:
            stream.close()


class AppRunner:
    """Lifecycle controller for app dev-server processes.

    With *spawn_check_seconds* above zero, ``run`` waits up to that long for
    the shell to exit and reports a non-zero exit as a SpawnError carrying
    its stderr. At zero only a process already gone at spawn time is caught.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        apps_dir: Path,
        dev_server: DevServerCfg,
        registry: ProcessRegistry | None = None,
        broadcaster: OutputBroadcaster | None = None,
        key_lock: KeyLock | None = None,
        port_reaper: Callable[[int], object] = free_port,
        terminator: Callable[..., None] = kill_process,
        spawn_check_seconds: float = 0.0,
    ) -> None:
        self._repo = repo
        self._apps_dir = Path(apps_dir)
        self._dev = dev_server
        self.registry = registry or ProcessRegistry()
        self.broadcaster = broadcaster or OutputBroadcaster()
        self.key_lock = key_lock or KeyLock()
        self._port_reaper = port_reaper
        self._terminator = terminator
        self._spawn_check_seconds = spawn_check_seconds

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def run(self, app_id: int) -> OperationResult:
        """Start the app's dev server; a running app is left alone.

        Raises:
            NotFoundError: Unknown app id.
            SpawnError: The process could not be started.
        """
        return self.key_lock.run(app_id, self._run_locked, app_id)

    def stop(self, app_id: int) -> OperationResult:
        """Stop the app's dev server; stopping a stopped app succeeds.

        Raises:
            TerminationError: The process would not exit.
        """
        logger.info(
            "Attempting to stop app %s. Current running apps: %d", app_id, len(self.registry)
        )
        return self.key_lock.run(app_id, self._stop_locked, app_id)

    def restart(self, app_id: int, remove_dependency_cache: bool = False) -> OperationResult:
        """Stop the app if it runs, optionally purge its dependency cache, start it again."""
        logger.info("Restarting app %s", app_id)
        return self.key_lock.run(app_id, self._restart_locked, app_id, remove_dependency_cache)

    def status(self, app_id: int) -> AppStatus:
        entry = self.registry.lookup(app_id)
        return AppStatus.RUNNING if entry is not None and entry.alive else AppStatus.STOPPED

    def stop_all(self) -> None:
        """Stop every registered app, logging failures instead of raising."""
        for app_id in self.registry.app_ids():
            try:
                self.stop(app_id)
            except AppDeckError as exc:
                logger.warning("Failed to stop app %s during shutdown: %s", app_id, exc)

    # ------------------------------------------------------------------
    # Locked bodies
    # ------------------------------------------------------------------

    def _run_locked(self, app_id: int) -> OperationResult:
        entry = self.registry.lookup(app_id)
        if entry is not None:
            if entry.alive:
                logger.debug("App %s is already running.", app_id)
                self.broadcaster.emit(app_id, OutputType.INFO, "App is already running.")
                return OperationResult(True, "App already running.")
            logger.info(
                "Discarding stale entry for app %s (exit code %s)", app_id, entry.handle.returncode
            )
            self.registry.unregister_if_current(app_id, entry.handle)

        app_path = self._app_path(app_id)
        logger.debug("Starting app %s in path %s", app_id, app_path)
        try:
            self._reap_port()
            self._spawn(app_id, app_path)
        except Exception as exc:
            logger.error("Error running app %s: %s", app_id, exc)
            self.broadcaster.emit(app_id, OutputType.CLIENT_ERROR, f"Failed to run app: {exc}")
            raise SpawnError(f"Failed to run app {app_id}: {exc}") from exc
        return OperationResult(True)

    def _stop_locked(self, app_id: int) -> OperationResult:
        entry = self.registry.lookup(app_id)
        if entry is None:
            logger.info("App %s not found in running apps. Assuming already stopped.", app_id)
            return OperationResult(True, "App not running.")

        handle = entry.handle
        logger.info(
            "Found running app %s with generation %d (PID %d). Attempting to stop.",
            app_id, entry.generation, handle.pid,
        )
        if not entry.alive:
            logger.info(
                "Process for app %s (PID %d) already exited (code %s). Cleaning up.",
                app_id, handle.pid, handle.returncode,
            )
            self.registry.unregister_if_current(app_id, handle)
            return OperationResult(True, "Process already exited.")

        try:
            self._terminator(handle, grace_seconds=self._dev.stop_grace_seconds)
        except Exception as exc:
            logger.error(
                "Error stopping app %s (PID %d, generation %d): %s",
                app_id, handle.pid, entry.generation, exc,
            )
            self.registry.unregister_if_current(app_id, handle)
            raise TerminationError(f"Failed to stop app {app_id}: {exc}") from exc

        self.registry.unregister_if_current(app_id, handle)
        logger.info("Successfully stopped app %s.", app_id)
        self._reap_port()
        return OperationResult(True)

    def _restart_locked(self, app_id: int, remove_dependency_cache: bool) -> OperationResult:
        try:
            entry = self.registry.lookup(app_id)
            if entry is not None:
                logger.info(
                    "Stopping app %s (generation %d) before restart", app_id, entry.generation
                )
                self._terminator(entry.handle, grace_seconds=self._dev.stop_grace_seconds)
                self.registry.unregister_if_current(app_id, entry.handle)
            else:
                logger.info("App %s not running. Proceeding to start.", app_id)

            self._reap_port()
            app_path = self._app_path(app_id)
            if remove_dependency_cache:
                self._purge_dependency_cache(app_id, app_path)

            logger.debug("Executing app %s in path %s after restart request", app_id, app_path)
            self._spawn(app_id, app_path)
            return OperationResult(True)
        except Exception as exc:
            logger.error("Error restarting app %s: %s", app_id, exc)
            self.broadcaster.emit(
                app_id, OutputType.CLIENT_ERROR, f"Failed to restart app: {exc}"
            )
            if isinstance(exc, AppDeckError):
                raise
            raise SpawnError(f"Failed to restart app {app_id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Spawning and process listeners
    # ------------------------------------------------------------------

    def _spawn(self, app_id: int, app_path: Path) -> RunningAppEntry:
        command = build_dev_command(self._dev)
        logger.info("Executing app %s with command: %s in %s", app_id, command, app_path)
        try:
            handle = subprocess.Popen(
                command,
                cwd=str(app_path),
                shell=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            raise SpawnError(f"Failed to spawn process for app {app_id}. Error: {exc}") from exc

        if self._spawn_check_seconds > 0:
            try:
                handle.wait(timeout=self._spawn_check_seconds)
            except subprocess.TimeoutExpired:
                pass
        if handle.poll() is not None and handle.returncode != 0:
            error_output = handle.stderr.read().decode("utf-8", errors="replace") if handle.stderr else ""
            _close_pipes(handle)
            raise SpawnError(
                f"Failed to spawn process for app {app_id}. "
                f"Error: {error_output.strip() or 'Unknown spawn error'}"
            )

        generation = self.registry.register(app_id, handle)
        logger.info("App %s started with PID %d, generation %d", app_id, handle.pid, generation)
        try:
            self._attach_listeners(app_id, handle)
        except Exception:
            self.registry.unregister_generation(app_id, generation)
            try:
                self._terminator(handle, grace_seconds=self._dev.stop_grace_seconds)
            except TerminationError as kill_exc:
                logger.error("Could not kill PID %d after setup failure: %s", handle.pid, kill_exc)
            _close_pipes(handle)
            raise
        return RunningAppEntry(handle=handle, generation=generation)

    def _attach_listeners(self, app_id: int, handle: subprocess.Popen) -> None:
        pumps = [
            threading.Thread(
                target=self._pump,
                args=(app_id, handle, handle.stdout, OutputType.STDOUT),
                name=f"appdeck-{app_id}-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump,
                args=(app_id, handle, handle.stderr, OutputType.STDERR),
                name=f"appdeck-{app_id}-stderr",
                daemon=True,
            ),
        ]
        watcher = threading.Thread(
            target=self._watch,
            args=(app_id, handle, pumps),
            name=f"appdeck-{app_id}-watch",
            daemon=True,
        )
        for pump in pumps:
            pump.start()
        watcher.start()

    def _pump(self, app_id: int, handle: subprocess.Popen, stream: IO[bytes], kind: OutputType) -> None:
        try:
            for raw in iter(stream.readline, b""):
                message = strip_control_sequences(raw.decode("utf-8", errors="replace"))
                logger.debug("App %s (PID %d) %s: %s", app_id, handle.pid, kind.value, message.rstrip())
                self.broadcaster.emit(app_id, kind, message)
        except (OSError, ValueError) as exc:
            self._on_process_error(app_id, handle, exc)
        finally:
            stream.close()

    def _watch(self, app_id: int, handle: subprocess.Popen, pumps: list[threading.Thread]) -> None:
        for pump in pumps:
            pump.join()
        code: int | None = handle.wait()
        signal_name: str | None = None
        if code is not None and code < 0:
            try:
                signal_name = signal.Signals(-code).name
            except ValueError:
                signal_name = str(-code)
            code = None
        logger.info(
            "App %s (PID %d) process closed with code %s, signal %s.",
            app_id, handle.pid, code, signal_name,
        )
        self.registry.unregister_if_current(app_id, handle)
        self.broadcaster.emit(
            app_id, OutputType.INFO, f"App process closed with code {code}, signal {signal_name}."
        )

    def _on_process_error(self, app_id: int, handle: subprocess.Popen, exc: BaseException) -> None:
        logger.error("Error in app %s (PID %d) process: %s", app_id, handle.pid, exc)
        self.registry.unregister_if_current(app_id, handle)
        self.broadcaster.emit(app_id, OutputType.CLIENT_ERROR, f"App process error: {exc}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _app_path(self, app_id: int) -> Path:
        app = self._repo.get_app(app_id)
        if app is None:
            raise NotFoundError(f"App {app_id} not found")
        return resolve_app_path(self._apps_dir, app.path)

    def _reap_port(self) -> None:
        try:
            self._port_reaper(self._dev.port)
        except Exception as exc:
            logger.debug("Port %d cleanup failed: %s", self._dev.port, exc)

    def _purge_dependency_cache(self, app_id: int, app_path: Path) -> None:
        cache_dir = app_path / self._dev.dependency_cache_dir
        if cache_dir.exists():
            logger.info("Removing %s for app %s at %s", self._dev.dependency_cache_dir, app_id, cache_dir)
            shutil.rmtree(cache_dir)
            logger.info("Successfully removed %s for app %s", self._dev.dependency_cache_dir, app_id)
        else:
            logger.info("No %s directory found for app %s", self._dev.dependency_cache_dir, app_id)
