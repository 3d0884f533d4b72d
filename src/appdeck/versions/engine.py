"""List, preview and revert an app's version history.

Versions are the commits of the app's git repository, one linear timeline.
A revert never rewrites history: it rewrites the working tree to match the
target snapshot and records that as one new commit, then drops the
conversation messages that came after the target.
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from appdeck.config import GitCfg, VersionsCfg
from appdeck.db.repository import Repository
from appdeck.errors import (
    NotFoundError,
    PersistenceError,
    RevertError,
    SnapshotReadError,
    VersionControlError,
)
from appdeck.paths import resolve_app_path
from appdeck.results import OperationResult
from appdeck.runtime.key_lock import KeyLock
from appdeck.versions.git import MODE_EXECUTABLE, MODE_SYMLINK, GitRepository, TreeEntry
from appdeck.versions.status import StatusRow, status_matrix

logger = logging.getLogger(__name__)

_EXEC_BITS = 0o111


@dataclass(frozen=True)
class Version:
    oid: str
    message: str
    timestamp: int

    def to_dict(self) -> dict:
        return {"oid": self.oid, "message": self.message, "timestamp": self.timestamp}


@dataclass
class RestorationLog:
    """Paths rewritten, deleted and still untouched during a revert."""

    restored: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RevertResult:
    success: bool
    commit: str
    restored: list[str]
    deleted: list[str]
    pruned_messages: int


def _restores(row: StatusRow) -> bool:
    return row.head == 1 and (row.workdir != 1 or row.stage == 3)


def _deletes(row: StatusRow) -> bool:
    return row.head == 0 and row.workdir != 0


def _remove_empty_parents(path: Path, root: Path) -> None:
    """Remove directories above *path* that are now empty, stopping at *root*."""
    parent = path.parent
    while parent != root and root in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            return
        parent = parent.parent


class VersionEngine:
    """Version operations by app id.

    ``checkout_version`` and ``revert_version`` hold the app's key in the
    same KeyLock the AppRunner uses, so they never interleave with a run,
    stop or restart of that app.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        apps_dir: Path,
        versions: VersionsCfg | None = None,
        git: GitCfg | None = None,
        key_lock: KeyLock | None = None,
    ) -> None:
        self._repo = repo
        self._apps_dir = Path(apps_dir)
        self._versions = versions or VersionsCfg()
        self._git_cfg = git or GitCfg()
        self.key_lock = key_lock or KeyLock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def list_versions(self, app_id: int) -> list[Version]:
        """Return the app's versions, newest first.

        An app without a git repository, or with no commits yet, has no
        versions.
        """
        git = self._open(app_id)
        if not git.is_repo():
            logger.info("No git repo found for app %s, returning empty versions list.", app_id)
            return []
        if not git.has_commits():
            return []
        try:
            commits = git.log(max_count=self._versions.max_versions)
        except VersionControlError as exc:
            logger.error("Error listing versions for app %s: %s", app_id, exc)
            raise VersionControlError(f"Failed to list versions: {exc}") from exc
        return [Version(oid=c.oid, message=c.message, timestamp=c.timestamp) for c in commits]

    def checkout_version(self, app_id: int, version_id: str) -> OperationResult:
        """Force the working tree to *version_id* without committing.

        Uncommitted changes are discarded and HEAD is left detached.
        """
        return self.key_lock.run(app_id, self._checkout_locked, app_id, version_id)

    def revert_version(self, app_id: int, target_version_id: str) -> RevertResult:
        """Make the working tree match *target_version_id* as a new commit.

        Raises:
            NotFoundError: Unknown app id.
            SnapshotReadError: The target commit or one of its blobs is unreadable.
            RevertError: The working tree was only partly restored.
            VersionControlError: Any other git failure.
            PersistenceError: Pruning the conversation log failed.
        """
        return self.key_lock.run(app_id, self._revert_locked, app_id, target_version_id)

    # ------------------------------------------------------------------
    # Locked bodies
    # ------------------------------------------------------------------

    def _checkout_locked(self, app_id: int, version_id: str) -> OperationResult:
        git = self._open(app_id)
        try:
            git.checkout(version_id, force=True)
        except VersionControlError as exc:
            logger.error("Error checking out version %s for app %s: %s", version_id, app_id, exc)
            raise VersionControlError(f"Failed to checkout version: {exc}") from exc
        logger.info("Successfully checked out version %s for app %s.", version_id, app_id)
        return OperationResult(True)

    def _revert_locked(self, app_id: int, target: str) -> RevertResult:
        git = self._open(app_id)
        try:
            target_oid = git.resolve_commit(target)
            branch = self._timeline_branch(git)
            git.checkout(branch, force=True)
            logger.info("Checked out %s branch for app %s before revert.", branch, app_id)

            rows = status_matrix(git, target_oid)
            logger.info("Generated status matrix for revert to %s for app %s.", target_oid, app_id)

            restoration = self._restore(git, target_oid, rows)
            git.add_all()
            commit = git.commit(f"Reverted all changes back to version {target_oid}", allow_empty=True)
            logger.info("Created revert commit %s for app %s.", commit, app_id)
        except RevertError as exc:
            logger.error(
                "Revert of app %s to %s stopped after %d restored, %d deleted, %d pending: %s",
                app_id, target, len(exc.restored), len(exc.deleted), len(exc.pending), exc,
            )
            raise
        except VersionControlError as exc:
            logger.error("Error reverting to version %s for app %s: %s", target, app_id, exc)
            raise type(exc)(f"Failed to revert version: {exc}") from exc

        pruned = self._prune_conversation(target_oid)
        return RevertResult(
            success=True,
            commit=commit,
            restored=restoration.restored,
            deleted=restoration.deleted,
            pruned_messages=pruned,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open(self, app_id: int) -> GitRepository:
        app = self._repo.get_app(app_id)
        if app is None:
            raise NotFoundError(f"App {app_id} not found")
        return GitRepository(
            resolve_app_path(self._apps_dir, app.path),
            author_name=self._git_cfg.author_name,
            author_email=self._git_cfg.author_email,
        )

    def _timeline_branch(self, git: GitRepository) -> str:
        branches = git.local_branches()
        if self._versions.branch in branches:
            return self._versions.branch
        if branches:
            logger.debug(
                "Branch %s not found in %s; using %s", self._versions.branch, git.path, branches[0]
            )
            return branches[0]
        raise VersionControlError(f"No local branch in {git.path} to revert on")

    def _restore(self, git: GitRepository, target_oid: str, rows: list[StatusRow]) -> RestorationLog:
        # Deletions before restores: a path may be a file in one tree and a
        # directory in the other.
        deletions = [row for row in rows if _deletes(row)]
        restores = [row for row in rows if _restores(row)]
        actions = deletions + restores
        restoration = RestorationLog(pending=[row.path for row in actions])

        for index, row in enumerate(actions):
            full_path = git.path / row.path
            try:
                if row.head == 1:
                    logger.debug("Restoring file %s from commit %s", row.path, target_oid)
                    self._write_entry(git, full_path, row.target)
                    restoration.restored.append(row.path)
                else:
                    logger.debug("Deleting file %s not present in commit %s", row.path, target_oid)
                    if full_path.exists() or full_path.is_symlink():
                        full_path.unlink()
                        try:
                            git.remove_cached(row.path)
                        except VersionControlError as exc:
                            logger.warning("Failed to remove %s from git index: %s", row.path, exc)
                        _remove_empty_parents(full_path, git.path)
                    restoration.deleted.append(row.path)
            except (OSError, SnapshotReadError) as exc:
                raise RevertError(
                    f"Failed to restore {row.path}: {exc}",
                    restored=restoration.restored,
                    deleted=restoration.deleted,
                    pending=restoration.pending[index:],
                ) from exc

        restoration.pending = []
        return restoration

    @staticmethod
    def _write_entry(git: GitRepository, full_path: Path, entry: TreeEntry) -> None:
        blob = git.read_blob(entry.oid)
        if full_path.is_symlink() or full_path.is_file():
            full_path.unlink()
        elif full_path.is_dir():
            shutil.rmtree(full_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        if entry.mode == MODE_SYMLINK:
            os.symlink(os.fsdecode(blob), full_path)
            return
        full_path.write_bytes(blob)
        mode = full_path.stat().st_mode
        if entry.mode == MODE_EXECUTABLE:
            full_path.chmod(mode | _EXEC_BITS)
        else:
            full_path.chmod(mode & ~_EXEC_BITS)

    def _prune_conversation(self, target_oid: str) -> int:
        try:
            tagged = self._repo.find_message_by_commit(target_oid)
            if tagged is None:
                logger.info(
                    "No message found with commit hash %s to determine messages to delete.",
                    target_oid,
                )
                return 0
            deleted = self._repo.delete_messages_after(tagged.chat_id, tagged.id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to prune messages after {target_oid}: {exc}") from exc
        logger.info(
            "Deleted %d messages after message ID %d in chat %d.", deleted, tagged.id, tagged.chat_id
        )
        return deleted
