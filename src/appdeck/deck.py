"""Wire the store, runtime and version engine together from a config."""

from __future__ import annotations

import logging
import sqlite3

from appdeck.apps import AppService, ChatLog
from appdeck.config import AppDeckConfig
from appdeck.db.connection import Database
from appdeck.db.repository import Repository
from appdeck.db.schema import initialize
from appdeck.runtime.key_lock import KeyLock
from appdeck.runtime.output import OutputBroadcaster
from appdeck.runtime.ports import free_port
from appdeck.runtime.registry import ProcessRegistry
from appdeck.runtime.runner import AppRunner
from appdeck.versions.engine import VersionEngine

logger = logging.getLogger(__name__)


class AppDeck:
    """One open store plus the services that operate on it.

    The runner and the version engine share a single KeyLock so every
    mutating operation on an app is serialised with the others.
    """

    def __init__(self, config: AppDeckConfig, conn: sqlite3.Connection, *, port_reaper=None) -> None:
        self.config = config
        self.conn = conn
        self.repo = Repository(conn)
        self.key_lock = KeyLock()
        self.registry = ProcessRegistry()
        self.broadcaster = OutputBroadcaster()
        self.runner = AppRunner(
            self.repo,
            apps_dir=config.apps.base_dir,
            dev_server=config.dev_server,
            registry=self.registry,
            broadcaster=self.broadcaster,
            key_lock=self.key_lock,
            port_reaper=port_reaper or free_port,
        )
        self.versions = VersionEngine(
            self.repo,
            apps_dir=config.apps.base_dir,
            versions=config.versions,
            git=config.git,
            key_lock=self.key_lock,
        )
        self.apps = AppService(
            self.repo,
            apps=config.apps,
            git=config.git,
            versions=config.versions,
            runner=self.runner,
        )
        self.chats = ChatLog(self.repo)

    @classmethod
    def open(cls, config: AppDeckConfig, **kwargs) -> AppDeck:
        """Open (and migrate) the configured database and build the services."""
        conn = Database(config.database.path).connect()
        initialize(conn)
        logger.debug("Opened store at %s", config.database.path)
        return cls(config, conn, **kwargs)

    def close(self) -> None:
        """Stop every running app, then close the store."""
        self.runner.stop_all()
        self.conn.close()

    def __enter__(self) -> AppDeck:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
