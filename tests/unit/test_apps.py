"""Tests for AppService and ChatLog."""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock

import pytest

from appdeck.apps import AppService, ChatLog
from appdeck.config import AppsCfg, GitCfg
from appdeck.errors import AppDeckError, ConflictError, NotFoundError, PersistenceError
from appdeck.versions.git import GitRepository


@pytest.fixture
def runner():
    return MagicMock()


@pytest.fixture
def service(repo, apps_dir, runner):
    return AppService(
        repo,
        apps=AppsCfg(base_dir=apps_dir),
        git=GitCfg(author_name="Test", author_email="test@example.com"),
        runner=runner,
    )


def _git(path):
    return GitRepository(path, author_name="Test", author_email="test@example.com")


# ------------------------------------------------------------------
# create_app
# ------------------------------------------------------------------

def test_create_app_without_scaffold(service, repo, apps_dir):
    app, chat = service.create_app("shop")

    assert app.name == "shop"
    assert app.path == "shop"
    assert chat.app_id == app.id
    log = _git(apps_dir / "shop").log()
    assert [c.message for c in log] == ["Initial commit"]


def test_create_app_copies_scaffold(repo, apps_dir, tmp_path):
    scaffold = tmp_path / "template"
    (scaffold / "src").mkdir(parents=True)
    (scaffold / "package.json").write_text("{}")
    (scaffold / "src" / "main.tsx").write_text("render()")
    service = AppService(repo, apps=AppsCfg(base_dir=apps_dir, scaffold_dir=scaffold))

    app, _ = service.create_app("fromtpl")

    root = apps_dir / "fromtpl"
    assert (root / "src" / "main.tsx").read_text() == "render()"
    git = _git(root)
    assert [c.message for c in git.log()] == ["Init from react vite template"]
    assert set(git.tree_entries("HEAD")) == {"package.json", "src/main.tsx"}


def test_create_app_existing_directory(service, apps_dir):
    (apps_dir / "taken").mkdir()
    with pytest.raises(ConflictError):
        service.create_app("taken")


def test_create_app_existing_name(service, repo, apps_dir):
    service.create_app("dup")
    with pytest.raises(ConflictError):
        service.create_app("dup")


def test_create_app_store_error_removes_directory(service, repo, apps_dir, monkeypatch):
    def failing(app):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repo, "add_app", failing)
    with pytest.raises(PersistenceError):
        service.create_app("ghost")

    assert not (apps_dir / "ghost").exists()


def test_create_app_copy_error_registers_nothing(repo, apps_dir, tmp_path, monkeypatch):
    scaffold = tmp_path / "template"
    scaffold.mkdir()
    (scaffold / "package.json").write_text("{}")
    service = AppService(repo, apps=AppsCfg(base_dir=apps_dir, scaffold_dir=scaffold))

    def failing_copy(src, dst, **kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr("appdeck.apps.shutil.copytree", failing_copy)
    with pytest.raises(AppDeckError, match="No space left"):
        service.create_app("full")

    assert repo.list_apps() == []
    assert not (apps_dir / "full").exists()


@pytest.mark.parametrize("name", ["", "..", "a/b"])
def test_create_app_invalid_name(service, name):
    with pytest.raises(ValueError):
        service.create_app(name)


# ------------------------------------------------------------------
# import / scan
# ------------------------------------------------------------------

def test_import_project_initialises_git(service, apps_dir, tmp_path):
    source = tmp_path / "outside" / "blog"
    source.mkdir(parents=True)
    (source / "index.html").write_text("<h1>hi</h1>")

    app = service.import_project(source)

    assert app.name == "blog"
    dest = apps_dir / "blog"
    assert (dest / "index.html").exists()
    assert [c.message for c in _git(dest).log()] == ["Initial import"]
    assert (source / "index.html").exists()


def test_import_project_keeps_existing_history(service, apps_dir, tmp_path, git_repo):
    source = tmp_path / "outside" / "site"
    git = git_repo(source)
    (source / "a.txt").write_text("a")
    git.add_all()
    git.commit("their history")

    service.import_project(source)

    assert [c.message for c in _git(apps_dir / "site").log()] == ["their history"]


def test_import_project_picks_unique_name(service, tmp_path):
    source = tmp_path / "outside" / "blog"
    source.mkdir(parents=True)
    first = service.import_project(source)
    second = service.import_project(source)
    assert (first.name, second.name) == ("blog", "blog-1")


def test_import_project_missing_source(service, tmp_path):
    with pytest.raises(NotFoundError):
        service.import_project(tmp_path / "nope")


def test_scan_registers_unknown_directories(service, make_app, apps_dir):
    make_app("known")
    (apps_dir / "found-a").mkdir()
    (apps_dir / "found-b").mkdir()
    (apps_dir / "stray.txt").write_text("not an app")

    added = service.scan_for_apps()

    assert [a.path for a in added] == ["found-a", "found-b"]
    assert {a.name for a in service.list_apps()} == {"known", "found-a", "found-b"}
    assert service.scan_for_apps() == []


def test_scan_reports_store_errors(service, repo, apps_dir, monkeypatch):
    (apps_dir / "broken").mkdir()

    def failing(app):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repo, "add_app", failing)
    with pytest.raises(PersistenceError, match="broken"):
        service.scan_for_apps()


# ------------------------------------------------------------------
# delete / rename
# ------------------------------------------------------------------

def test_delete_app_stops_and_removes(service, repo, runner, apps_dir):
    app, _ = service.create_app("gone")

    service.delete_app(app.id)

    runner.stop.assert_called_once_with(app.id)
    assert not (apps_dir / "gone").exists()
    assert repo.get_app(app.id) is None


def test_delete_unknown_app(service):
    with pytest.raises(NotFoundError):
        service.delete_app(999)


def test_rename_only(service, runner, apps_dir):
    app, _ = service.create_app("old")
    updated = service.rename_app(app.id, "New Name")
    assert updated.name == "New Name"
    assert updated.path == "old"
    runner.stop.assert_not_called()


def test_rename_moves_directory(service, runner, apps_dir):
    app, _ = service.create_app("old")
    updated = service.rename_app(app.id, "new", path="new")
    assert updated.path == "new"
    assert (apps_dir / "new" / ".git").is_dir()
    assert not (apps_dir / "old").exists()
    runner.stop.assert_called_once_with(app.id)


def test_rename_conflicting_name(service):
    a, _ = service.create_app("a")
    service.create_app("b")
    with pytest.raises(ConflictError):
        service.rename_app(a.id, "b")


def test_rename_rolls_back_move_on_store_error(service, repo, apps_dir, monkeypatch):
    app, _ = service.create_app("stay")

    def failing(app_id, *, name, path):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repo, "update_app", failing)
    with pytest.raises(PersistenceError):
        service.rename_app(app.id, "moved", path="moved")

    assert (apps_dir / "stay").is_dir()
    assert not (apps_dir / "moved").exists()


# ------------------------------------------------------------------
# Files
# ------------------------------------------------------------------

def test_edit_file_commits(service, apps_dir):
    app, _ = service.create_app("web")

    commit = service.edit_file(app.id, "src/App.tsx", "export default 1\n")

    git = _git(apps_dir / "web")
    assert git.head() == commit
    assert git.log()[0].message == "Updated src/App.tsx"
    assert service.read_file(app.id, "src/App.tsx") == "export default 1\n"


def test_edit_file_without_changes_skips_commit(service):
    app, _ = service.create_app("web")
    service.edit_file(app.id, "a.txt", "same")
    assert service.edit_file(app.id, "a.txt", "same") is None


def test_edit_file_outside_app_rejected(service):
    app, _ = service.create_app("web")
    with pytest.raises(ValueError):
        service.edit_file(app.id, "../escape.txt", "x")


def test_read_missing_file(service):
    app, _ = service.create_app("web")
    with pytest.raises(NotFoundError):
        service.read_file(app.id, "missing.txt")


# ------------------------------------------------------------------
# ChatLog
# ------------------------------------------------------------------

def test_chat_log_records_in_order(repo, make_app):
    app = make_app("talk")
    chats = ChatLog(repo)

    chats.record(app.id, "user", "build a todo app")
    chats.record(app.id, "assistant", "done", commit_hash="abc123")

    history = chats.history(app.id)
    assert [(m.role, m.content, m.commit_hash) for m in history] == [
        ("user", "build a todo app", None),
        ("assistant", "done", "abc123"),
    ]


def test_chat_log_reuses_current_chat(repo, make_app):
    app = make_app("talk")
    chats = ChatLog(repo)
    first = chats.current_chat(app.id)
    assert chats.current_chat(app.id).id == first.id
    assert len(repo.list_chats(app.id)) == 1


def test_chat_log_unknown_app(repo):
    with pytest.raises(NotFoundError):
        ChatLog(repo).history(42)
