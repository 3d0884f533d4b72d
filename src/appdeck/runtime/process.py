"""Stop a child process and everything it spawned.

Graceful signal first, forceful kill after the grace interval.
"""

from __future__ import annotations

import logging
import subprocess
import time

import psutil

from appdeck.errors import TerminationError

logger = logging.getLogger(__name__)


def _descendants(pid: int) -> list[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except psutil.NoSuchProcess:
        return []


def _running(procs: list[psutil.Process]) -> list[psutil.Process]:
    """Drop processes that have exited, including unreaped zombies."""
    running = []
    for proc in procs:
        try:
            if proc.status() != psutil.STATUS_ZOMBIE:
                running.append(proc)
        except psutil.NoSuchProcess:
            pass
    return running


def _wait_gone(procs: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    deadline = time.monotonic() + timeout
    alive = _running(procs)
    while alive and time.monotonic() < deadline:
        time.sleep(0.05)
        alive = _running(alive)
    return alive


def kill_process(handle: subprocess.Popen, *, grace_seconds: float = 5.0) -> None:
    """Terminate *handle* and its descendants, escalating to SIGKILL.

    The handle itself is waited on through ``Popen`` so its return code stays
    accurate for whoever else is waiting on it.

    Raises:
        TerminationError: If the process is still alive after the kill.
    """
    if handle.poll() is not None:
        return

    children = _descendants(handle.pid)
    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            pass

    try:
        handle.terminate()
    except ProcessLookupError:
        pass

    try:
        handle.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        logger.warning("PID %d ignored SIGTERM; force killing", handle.pid)
        handle.kill()
        try:
            handle.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            raise TerminationError(f"Process {handle.pid} did not exit after SIGKILL") from None

    alive = _wait_gone(children, grace_seconds)
    for proc in alive:
        try:
            logger.warning("Force killing stuck child PID %d", proc.pid)
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    still_alive = _wait_gone(alive, grace_seconds)
    if still_alive:
        pids = ", ".join(str(p.pid) for p in still_alive)
        raise TerminationError(f"Child processes of {handle.pid} survived SIGKILL: {pids}")
