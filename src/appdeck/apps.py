"""App management: create, import, scan, rename, delete and single-file edits.

Also holds ChatLog, the small service that appends to and reads an app's
conversation log.
"""

from __future__ import annotations

import logging
import shutil
import sqlite3
from pathlib import Path

from appdeck.config import AppsCfg, GitCfg, VersionsCfg
from appdeck.db.models import App, Chat, Message
from appdeck.db.repository import Repository
from appdeck.errors import AppDeckError, ConflictError, NotFoundError, PersistenceError, VersionControlError
from appdeck.paths import resolve_app_path, resolve_inside
from appdeck.runtime.runner import AppRunner
from appdeck.versions.git import GitRepository

logger = logging.getLogger(__name__)

_SCAFFOLD_COMMIT = "Init from react vite template"
_EMPTY_COMMIT = "Initial commit"
_IMPORT_COMMIT = "Initial import"


def _validate_name(name: str) -> str:
    name = name.strip()
    if not name or name in (".", "..") or Path(name).name != name:
        raise ValueError(f"Invalid app name '{name}': use a single directory name")
    return name


class AppService:
    """Apps on disk and in the store, kept in step.

    Args:
        repo: Open repository.
        apps: Base-directory settings; relative app paths resolve against
            ``apps.base_dir``.
        runner: Used to stop an app before it is deleted or moved.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        apps: AppsCfg,
        git: GitCfg | None = None,
        versions: VersionsCfg | None = None,
        runner: AppRunner | None = None,
    ) -> None:
        self._repo = repo
        self._apps = apps
        self._git_cfg = git or GitCfg()
        self._versions = versions or VersionsCfg()
        self._runner = runner

    @property
    def base_dir(self) -> Path:
        return Path(self._apps.base_dir).expanduser()

    def app_path(self, app: App) -> Path:
        return resolve_app_path(self.base_dir, app.path)

    def get_app(self, app_id: int) -> App:
        app = self._repo.get_app(app_id)
        if app is None:
            raise NotFoundError(f"App {app_id} not found")
        return app

    def list_apps(self) -> list[App]:
        return self._repo.list_apps()

    # ------------------------------------------------------------------
    # Create / import / scan
    # ------------------------------------------------------------------

    def create_app(self, name: str) -> tuple[App, Chat]:
        """Create an app directory, its store row and an initial chat.

        The scaffold, if configured, is copied in and committed as the first
        version. Git problems are logged; the app is still created.

        Raises:
            ConflictError: The directory or name is already taken.
            AppDeckError: The app directory could not be created.
            PersistenceError: The store rejected the new app; the directory is removed again.
        """
        name = _validate_name(name)
        full_path = self.base_dir / name
        if full_path.exists():
            raise ConflictError(f"App already exists at: {full_path}")
        if self._repo.get_app_by_name(name) is not None:
            raise ConflictError(f"An app with the name '{name}' already exists")

        scaffold = self._apps.scaffold_dir
        try:
            if scaffold is not None and Path(scaffold).is_dir():
                shutil.copytree(scaffold, full_path, symlinks=True)
                logger.info("Copied scaffold to %s", full_path)
                message = _SCAFFOLD_COMMIT
            else:
                full_path.mkdir(parents=True)
                message = _EMPTY_COMMIT
        except OSError as exc:
            shutil.rmtree(full_path, ignore_errors=True)
            raise AppDeckError(f"Failed to create app files at {full_path}: {exc}") from exc

        try:
            app, chat = self._register(name, name)
        except PersistenceError:
            shutil.rmtree(full_path, ignore_errors=True)
            raise

        git = self._git(full_path)
        try:
            git.init(self._versions.branch)
            logger.info("Initialized git repo in %s", full_path)
            git.add_all()
            git.commit(message, allow_empty=True)
            logger.info("Created initial commit in %s", full_path)
        except VersionControlError as exc:
            logger.error("Error during app initialization in %s: %s", full_path, exc)

        return app, chat

    def import_project(self, source: Path) -> App:
        """Copy an existing project directory into the apps directory.

        The copy gets a unique name (``name``, ``name-1``, ``name-2`` ...).
        A git repository is initialised only when the project has none.
        """
        source = Path(source).expanduser()
        logger.info("Importing project from: %s", source)
        if not source.is_dir():
            raise NotFoundError(f"Source path is not a directory: {source}")

        base_name = source.resolve().name
        name = base_name
        counter = 1
        while (
            self._repo.get_app_by_name(name) is not None
            or self._repo.get_app_by_path(name) is not None
            or (self.base_dir / name).exists()
        ):
            name = f"{base_name}-{counter}"
            counter += 1

        dest = self.base_dir / name
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, dest, symlinks=True)
        logger.info("Successfully copied project to: %s", dest)

        git = self._git(dest)
        if not git.is_repo():
            try:
                git.init(self._versions.branch)
                git.add_all()
                git.commit(_IMPORT_COMMIT, allow_empty=True)
                logger.info("Initialized git repo and created initial commit.")
            except VersionControlError as exc:
                logger.warning("Failed to initialize git repo in %s: %s", dest, exc)
        else:
            logger.info("Git repo already exists in %s. Skipping init.", dest)

        try:
            app, _ = self._register(name, name)
        except PersistenceError:
            shutil.rmtree(dest, ignore_errors=True)
            raise
        logger.info("Successfully imported app: %s (ID: %s)", app.name, app.id)
        return app

    def scan_for_apps(self) -> list[App]:
        """Register directories under the base directory that the store does not know.

        Raises:
            PersistenceError: One or more directories could not be added; the
                others were still registered.
        """
        logger.info("Scanning for existing apps in %s", self.base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        known_paths = {app.path for app in self._repo.list_apps()}
        missing = sorted(
            entry.name
            for entry in self.base_dir.iterdir()
            if entry.is_dir() and entry.name not in known_paths
        )
        logger.info("Found %d missing apps.", len(missing))

        added: list[App] = []
        errors: list[str] = []
        for dir_name in missing:
            name = dir_name
            counter = 1
            while self._repo.get_app_by_name(name) is not None:
                name = f"{dir_name}-{counter}"
                counter += 1
            try:
                app, _ = self._register(name, dir_name)
            except PersistenceError as exc:
                logger.error("Error adding app %s to the store: %s", dir_name, exc)
                errors.append(f"Failed to add app '{dir_name}': {exc}")
                continue
            added.append(app)
            logger.info("Added app: %s (path: %s)", app.name, app.path)

        if errors:
            raise PersistenceError("Scan completed with errors:\n" + "\n".join(errors))
        return added

    # ------------------------------------------------------------------
    # Delete / rename
    # ------------------------------------------------------------------

    def delete_app(self, app_id: int) -> None:
        """Stop the app if it runs, remove its files, then its store row."""
        app = self.get_app(app_id)
        self._stop_quietly(app_id)

        full_path = self.app_path(app)
        if full_path.exists():
            try:
                shutil.rmtree(full_path)
            except OSError as exc:
                logger.error("Error deleting app files for app %s: %s", app_id, exc)
                raise AppDeckError(f"Failed to delete app files: {exc}") from exc
            logger.info("Successfully deleted app files for app %s at %s", app_id, full_path)
        else:
            logger.info("App directory not found for deletion: %s", full_path)

        try:
            self._repo.delete_app(app_id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete app from the store: {exc}") from exc
        logger.info("Successfully deleted app %s from the store.", app_id)

    def rename_app(self, app_id: int, name: str, path: str | None = None) -> App:
        """Rename an app and, when *path* differs, move its directory.

        The move is undone if the store update fails.
        """
        app = self.get_app(app_id)
        name = name.strip()
        if not name:
            raise ValueError("App name must not be empty")
        path = _validate_name(path) if path is not None else app.path

        name_conflict = self._repo.get_app_by_name(name)
        if name_conflict is not None and name_conflict.id != app_id:
            raise ConflictError(f"An app with the name '{name}' already exists")
        path_conflict = self._repo.get_app_by_path(path)
        if path_conflict is not None and path_conflict.id != app_id:
            raise ConflictError(f"An app with the path '{path}' already exists")

        old_path = self.app_path(app)
        new_path = resolve_app_path(self.base_dir, path)
        moved = new_path != old_path
        if moved:
            if new_path.exists():
                raise ConflictError(f"Destination path '{new_path}' already exists")
            self._stop_quietly(app_id)
            new_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                shutil.move(str(old_path), str(new_path))
            except OSError as exc:
                raise AppDeckError(f"Failed to move app files: {exc}") from exc
            logger.info("Successfully moved app files from %s to %s", old_path, new_path)

        try:
            updated = self._repo.update_app(app_id, name=name, path=path)
        except sqlite3.Error as exc:
            if moved:
                try:
                    shutil.move(str(new_path), str(old_path))
                    logger.warning("Rolled back file move for app %s after a store error.", app_id)
                except OSError as rollback_exc:
                    logger.error(
                        "Failed to roll back file move for app %s: %s", app_id, rollback_exc
                    )
            raise PersistenceError(f"Failed to update app in the store: {exc}") from exc

        logger.info("Successfully updated app %s.", app_id)
        return updated

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def read_file(self, app_id: int, rel_path: str) -> str:
        app = self.get_app(app_id)
        full_path = resolve_inside(self.app_path(app), rel_path)
        if not full_path.is_file():
            raise NotFoundError(f"File not found: {rel_path}")
        return full_path.read_text(encoding="utf-8")

    def edit_file(self, app_id: int, rel_path: str, content: str) -> str | None:
        """Write *content* to an app file and commit it when the app is a git repo.

        Returns:
            The new commit id, or None when nothing was committed.
        """
        app = self.get_app(app_id)
        app_dir = self.app_path(app)
        full_path = resolve_inside(app_dir, rel_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
        logger.info("Successfully wrote file: %s", full_path)

        git = self._git(app_dir)
        if not git.is_repo():
            logger.info("No git repo found in %s, skipping commit.", app_dir)
            return None
        rel = full_path.relative_to(app_dir.resolve()).as_posix()
        git.add(rel)
        if not git.has_staged_changes():
            logger.info("No changes to commit for %s", rel)
            return None
        commit = git.commit(f"Updated {rel}")
        logger.info("Created commit for file update: %s", rel)
        return commit

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _register(self, name: str, path: str) -> tuple[App, Chat]:
        try:
            app = self._repo.add_app(App(name=name, path=path))
            chat = self._repo.add_chat(Chat(app_id=app.id))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to add app '{name}': {exc}") from exc
        return app, chat

    def _git(self, path: Path) -> GitRepository:
        return GitRepository(
            path,
            author_name=self._git_cfg.author_name,
            author_email=self._git_cfg.author_email,
        )

    def _stop_quietly(self, app_id: int) -> None:
        if self._runner is None:
            return
        try:
            self._runner.stop(app_id)
        except AppDeckError as exc:
            logger.error("Failed to stop app %s before changing it: %s", app_id, exc)


class ChatLog:
    """Append to and read an app's conversation log."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def current_chat(self, app_id: int) -> Chat:
        """Return the app's most recent chat, creating one if it has none."""
        if self._repo.get_app(app_id) is None:
            raise NotFoundError(f"App {app_id} not found")
        chats = self._repo.list_chats(app_id)
        if chats:
            return chats[0]
        return self._repo.add_chat(Chat(app_id=app_id))

    def record(
        self, app_id: int, role: str, content: str, commit_hash: str | None = None
    ) -> Message:
        chat = self.current_chat(app_id)
        try:
            return self._repo.add_message(
                Message(chat_id=chat.id, role=role, content=content, commit_hash=commit_hash)
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to record message: {exc}") from exc

    def history(self, app_id: int) -> list[Message]:
        """Messages of the app's current chat, oldest first."""
        return self._repo.list_messages(self.current_chat(app_id).id)
