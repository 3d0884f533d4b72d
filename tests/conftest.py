"""Shared pytest fixtures."""

from __future__ import annotations

import sys
import textwrap
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from appdeck.config import DevServerCfg, PackageManagerCfg
from appdeck.db.connection import Database
from appdeck.db.models import App
from appdeck.db.repository import Repository
from appdeck.db.schema import initialize
from appdeck.runtime.output import OutputBroadcaster, OutputEvent
from appdeck.versions.git import GitRepository

PYTHON = sys.executable

# Stands in for `pnpm run dev`: reports the port it was given, then idles.
DEV_SERVER_SCRIPT = textwrap.dedent(
    """
    import sys, time
    print("dev server listening on " + sys.argv[-1], flush=True)
    sys.stderr.write("warming up\\n")
    sys.stderr.flush()
    while True:
        time.sleep(0.1)
    """
)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "appdeck.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def apps_dir(tmp_path) -> Path:
    path = tmp_path / "apps"
    path.mkdir()
    return path


@pytest.fixture
def make_app(repo, apps_dir) -> Callable[[str], App]:
    """Register an app and create its directory under apps_dir."""

    def _make(name: str = "demo") -> App:
        (apps_dir / name).mkdir(parents=True, exist_ok=True)
        return repo.add_app(App(name=name, path=name))

    return _make


@pytest.fixture
def git_repo() -> Callable[[Path], GitRepository]:
    """Initialise a git repository on ``main`` in the given directory."""

    def _init(path: Path) -> GitRepository:
        path.mkdir(parents=True, exist_ok=True)
        git = GitRepository(path, author_name="Test", author_email="test@example.com")
        git.init("main")
        return git

    return _init


def write_script(directory: Path, name: str, body: str) -> Path:
    script = directory / name
    script.write_text(body, encoding="utf-8")
    return script


@pytest.fixture
def dev_server_cfg(tmp_path) -> DevServerCfg:
    """Dev-server config whose only package manager is the running interpreter."""
    script = write_script(tmp_path, "dev_server.py", DEV_SERVER_SCRIPT)
    return DevServerCfg(
        port=38517,
        package_managers=[
            PackageManagerCfg(
                name=PYTHON,
                install="",
                dev=f'"{PYTHON}" "{script}" --port {{port}}',
            )
        ],
        stop_grace_seconds=2.0,
    )


class EventCollector:
    """Records OutputEvents and lets a test wait for a matching one."""

    def __init__(self) -> None:
        self.events: list[OutputEvent] = []
        self._cond = threading.Condition()

    def __call__(self, event: OutputEvent) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def wait_for(self, predicate: Callable[[OutputEvent], bool], timeout: float = 10.0) -> OutputEvent:
        with self._cond:
            found = self._cond.wait_for(
                lambda: next((e for e in self.events if predicate(e)), None), timeout
            )
        if found is None:
            raise AssertionError(f"No matching event within {timeout}s; got {self.events!r}")
        return found

    def messages(self, type=None) -> list[str]:
        with self._cond:
            return [e.message for e in self.events if type is None or e.type == type]


@pytest.fixture
def collect_events():
    """Subscribe an EventCollector to a broadcaster; unsubscribed after the test."""
    subscriptions = []

    def _collect(broadcaster: OutputBroadcaster, app_id: int | None = None) -> EventCollector:
        collector = EventCollector()
        subscriptions.append(broadcaster.subscribe(collector, app_id=app_id))
        return collector

    yield _collect
    for sub in subscriptions:
        sub.close()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a throwaway store, apps directory and dev server.

    The working directory holds an appdeck.yaml whose only package manager is
    the running interpreter, so ``appdeck run`` starts the idle script above.
    """
    import yaml

    import appdeck.cli.common as cli_common
    import appdeck.config as config_module
    import appdeck.deck as deck_module

    work = tmp_path / "work"
    work.mkdir()
    apps = tmp_path / "cli-apps"
    script = write_script(tmp_path, "cli_dev_server.py", DEV_SERVER_SCRIPT)
    (work / "appdeck.yaml").write_text(
        yaml.safe_dump(
            {
                "dev_server": {
                    "package_managers": [
                        {"name": PYTHON, "install": "", "dev": f'"{PYTHON}" "{script}" --port {{port}}'}
                    ],
                    "stop_grace_seconds": 2,
                },
                "git": {"author_name": "Test", "author_email": "test@example.com"},
            }
        ),
        encoding="utf-8",
    )

    monkeypatch.setattr(config_module, "_GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    monkeypatch.setattr(deck_module, "free_port", lambda port: None)
    monkeypatch.setattr(cli_common.console, "width", 200)
    monkeypatch.setitem(cli_common.cli_state, "verbose", False)
    monkeypatch.setenv("APPDECK_DB", str(tmp_path / "cli.db"))
    monkeypatch.setenv("APPDECK_APPS_DIR", str(apps))
    monkeypatch.setenv("APPDECK_DEV_PORT", "38519")
    monkeypatch.setenv("APPDECK_LOG_LEVEL", "WARNING")
    monkeypatch.chdir(work)
    return apps
