"""appdeck process runtime: locking, registry, output and the app runner."""

from appdeck.runtime.key_lock import KeyLock
from appdeck.runtime.output import (
    OutputBroadcaster,
    OutputEvent,
    OutputType,
    Subscription,
    strip_control_sequences,
)
from appdeck.runtime.ports import free_port
from appdeck.runtime.process import kill_process
from appdeck.runtime.registry import ProcessRegistry, RunningAppEntry
from appdeck.runtime.runner import AppRunner, AppStatus, build_dev_command

__all__ = [
    "AppRunner",
    "AppStatus",
    "KeyLock",
    "OutputBroadcaster",
    "OutputEvent",
    "OutputType",
    "ProcessRegistry",
    "RunningAppEntry",
    "Subscription",
    "build_dev_command",
    "free_port",
    "kill_process",
    "strip_control_sequences",
]
