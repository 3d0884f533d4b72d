"""Free a TCP port by terminating whatever listens on it.

Best effort only: every failure is logged and swallowed. If the port is
still taken afterwards, the next spawn fails loudly on its own.
"""

from __future__ import annotations

import logging
import os

import psutil

logger = logging.getLogger(__name__)


def _listening_pids(port: int) -> set[int]:
    pids: set[int] = set()
    for conn in psutil.net_connections(kind="inet"):
        if conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN and conn.pid:
            pids.add(conn.pid)
    pids.discard(os.getpid())
    return pids


def free_port(port: int, *, grace_seconds: float = 3.0) -> int:
    """Terminate the processes listening on *port*.

    Returns:
        Number of processes signalled. 0 when nothing was bound, which is
        a success, or when the port could not be inspected.
    """
    try:
        pids = _listening_pids(port)
    except (psutil.AccessDenied, OSError) as exc:
        logger.debug("Cannot inspect listeners on port %d: %s", port, exc)
        return 0

    if not pids:
        logger.debug("No process found on port %d", port)
        return 0

    procs: list[psutil.Process] = []
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            procs.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            logger.debug("Could not terminate PID %d on port %d: %s", pid, port, exc)

    try:
        _, alive = psutil.wait_procs(procs, timeout=grace_seconds)
        for proc in alive:
            try:
                logger.warning("Force killing PID %d still holding port %d", proc.pid, port)
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        psutil.wait_procs(alive, timeout=grace_seconds)
    except Exception as exc:
        logger.warning("Failed to free port %d: %s", port, exc)
        return len(procs)

    if procs:
        logger.info("Killed %d process(es) on port %d", len(procs), port)
    return len(procs)
