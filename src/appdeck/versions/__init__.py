"""appdeck version history: git wrapper, status matrix and engine."""

from appdeck.versions.engine import RestorationLog, RevertResult, Version, VersionEngine
from appdeck.versions.git import CommitInfo, GitRepository
from appdeck.versions.status import StatusRow, status_matrix

__all__ = [
    "CommitInfo",
    "GitRepository",
    "RestorationLog",
    "RevertResult",
    "StatusRow",
    "Version",
    "VersionEngine",
    "status_matrix",
]
