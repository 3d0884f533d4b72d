"""Exception hierarchy shared by the runner, the version engine and the CLI.

Core operations raise these; the CLI turns every ``AppDeckError`` into an
actionable message and a non-zero exit code. Nothing here is retried.
"""

from __future__ import annotations


class AppDeckError(Exception):
    """Base class for all appdeck failures surfaced to the caller."""


class NotFoundError(AppDeckError):
    """An app, chat or version id is unknown."""


class ConflictError(AppDeckError):
    """A name, path or directory is already taken."""


class SpawnError(AppDeckError):
    """The dev-server process could not be started."""


class TerminationError(AppDeckError):
    """A running process would not stop."""


class VersionControlError(AppDeckError):
    """A git operation failed."""


class SnapshotReadError(VersionControlError):
    """A historical object is corrupt or missing."""


class PersistenceError(AppDeckError):
    """The store rejected a write."""


class RevertError(VersionControlError):
    """A revert failed partway through restoring the working tree.

    Restoration is not transactional: ``restored`` and ``deleted`` list the
    paths already rewritten, ``pending`` the ones left untouched.
    """

    def __init__(
        self,
        message: str,
        *,
        restored: list[str] | None = None,
        deleted: list[str] | None = None,
        pending: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.restored = list(restored or [])
        self.deleted = list(deleted or [])
        self.pending = list(pending or [])
