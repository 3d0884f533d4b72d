"""Thin wrapper around the ``git`` command line for one working tree.

Every call runs ``git -C <path> ...`` with shell=False and captured output.
A non-zero exit becomes a VersionControlError carrying git's stderr.
"""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path

from appdeck.errors import SnapshotReadError, VersionControlError

logger = logging.getLogger(__name__)

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"

# Git file modes for the entries appdeck reads and writes.
MODE_FILE = "100644"
MODE_EXECUTABLE = "100755"
MODE_SYMLINK = "120000"


@dataclass(frozen=True)
class CommitInfo:
    oid: str
    message: str
    timestamp: int  # author time, epoch seconds


@dataclass(frozen=True)
class TreeEntry:
    """Mode and blob id of one path in a tree, the index or the working tree."""

    mode: str
    oid: str


class GitRepository:
    """Git operations on the working tree at *path*.

    Commits are authored and committed as *author_name* <*author_email*>
    regardless of the user's git configuration.
    """

    def __init__(
        self,
        path: Path,
        *,
        author_name: str = "appdeck",
        author_email: str = "appdeck@localhost",
    ) -> None:
        self.path = Path(path)
        self._env = {
            **os.environ,
            "GIT_AUTHOR_NAME": author_name,
            "GIT_AUTHOR_EMAIL": author_email,
            "GIT_COMMITTER_NAME": author_name,
            "GIT_COMMITTER_EMAIL": author_email,
            "GIT_TERMINAL_PROMPT": "0",
        }

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _git(
        self,
        *args: str,
        input: str | bytes | None = None,
        text: bool = True,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = ["git", "-C", str(self.path), "-c", "commit.gpgsign=false", *args]
        try:
            result = subprocess.run(
                cmd,
                shell=False,
                capture_output=True,
                input=input,
                text=text,
                encoding="utf-8" if text else None,
                env=self._env,
            )
        except FileNotFoundError:
            raise VersionControlError("git executable not found on PATH") from None
        if check and result.returncode != 0:
            stderr = result.stderr if text else result.stderr.decode("utf-8", errors="replace")
            raise VersionControlError(f"git {args[0]} failed: {stderr.strip()}")
        return result

    @staticmethod
    def _split_z(output: str) -> list[str]:
        return [item for item in output.split("\0") if item]

    # ------------------------------------------------------------------
    # Repository state
    # ------------------------------------------------------------------

    def is_repo(self) -> bool:
        return (self.path / ".git").exists()

    def init(self, branch: str = "main") -> None:
        """Create a repository whose first commit will land on *branch*."""
        self._git("init", "--quiet")
        self._git("symbolic-ref", "HEAD", f"refs/heads/{branch}")

    def has_commits(self) -> bool:
        return self._git("rev-parse", "--verify", "--quiet", "HEAD^{commit}", check=False).returncode == 0

    def resolve_commit(self, ref: str) -> str:
        """Return the full commit id *ref* points to.

        Raises:
            SnapshotReadError: If *ref* does not name a readable commit.
        """
        result = self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if result.returncode != 0:
            raise SnapshotReadError(f"Version {ref} not found in {self.path}")
        return result.stdout.strip()

    def head(self) -> str:
        return self.resolve_commit("HEAD")

    def local_branches(self) -> list[str]:
        result = self._git("for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line for line in result.stdout.splitlines() if line]

    def log(self, max_count: int = 1000) -> list[CommitInfo]:
        """Return up to *max_count* commits reachable from HEAD, newest first."""
        result = self._git(
            "log",
            f"--max-count={max_count}",
            f"--format=%H{_FIELD_SEP}%at{_FIELD_SEP}%B{_RECORD_SEP}",
            "HEAD",
        )
        commits: list[CommitInfo] = []
        for record in result.stdout.split(_RECORD_SEP):
            record = record.lstrip("\n")
            if not record:
                continue
            oid, timestamp, message = record.split(_FIELD_SEP, 2)
            commits.append(CommitInfo(oid=oid, message=message.rstrip("\n"), timestamp=int(timestamp)))
        return commits

    # ------------------------------------------------------------------
    # Working tree and index
    # ------------------------------------------------------------------

    def checkout(self, ref: str, *, force: bool = False) -> None:
        args = ["checkout", "--quiet"]
        if force:
            args.append("--force")
        self._git(*args, ref, "--")

    def tree_entries(self, ref: str) -> dict[str, TreeEntry]:
        """Map every file and symlink path in *ref*'s tree to its mode and blob id."""
        result = self._git("ls-tree", "-r", "-z", "--full-tree", ref)
        entries: dict[str, TreeEntry] = {}
        for item in self._split_z(result.stdout):
            meta, path = item.split("\t", 1)
            mode, kind, oid = meta.split()
            if kind == "blob":
                entries[path] = TreeEntry(mode=mode, oid=oid)
        return entries

    def index_entries(self) -> dict[str, TreeEntry]:
        """Map every staged path to its mode and blob id."""
        result = self._git("ls-files", "--stage", "-z")
        entries: dict[str, TreeEntry] = {}
        for item in self._split_z(result.stdout):
            meta, path = item.split("\t", 1)
            mode, oid, _stage = meta.split()
            entries.setdefault(path, TreeEntry(mode=mode, oid=oid))
        return entries

    def worktree_files(self) -> list[str]:
        """Tracked and untracked, non-ignored files present on disk."""
        result = self._git("ls-files", "--cached", "--others", "--exclude-standard", "-z")
        seen: dict[str, None] = {}
        for path in self._split_z(result.stdout):
            if os.path.lexists(self.path / path):
                seen.setdefault(path, None)
        return list(seen)

    def hash_files(self, paths: list[str]) -> dict[str, TreeEntry]:
        """Modes and blob ids the working-tree paths would get if staged.

        A symlink hashes as its link text, never as the file it points to.
        Paths that are neither regular files nor symlinks are left out.
        """
        entries: dict[str, TreeEntry] = {}
        regular: dict[str, str] = {}
        for path in paths:
            full_path = self.path / path
            try:
                st = os.lstat(full_path)
            except FileNotFoundError:
                continue
            if stat.S_ISLNK(st.st_mode):
                target = os.fsencode(os.readlink(full_path))
                oid = self._git("hash-object", "--stdin", input=target, text=False).stdout
                entries[path] = TreeEntry(mode=MODE_SYMLINK, oid=oid.decode("ascii").strip())
            elif stat.S_ISREG(st.st_mode):
                regular[path] = MODE_EXECUTABLE if st.st_mode & stat.S_IXUSR else MODE_FILE

        if regular:
            result = self._git("hash-object", "--stdin-paths", input="\n".join(regular) + "\n")
            for (path, mode), oid in zip(regular.items(), result.stdout.split()):
                entries[path] = TreeEntry(mode=mode, oid=oid)
        return entries

    def read_blob(self, oid: str) -> bytes:
        """Return the raw contents of blob *oid*.

        Raises:
            SnapshotReadError: If the object is missing or corrupt.
        """
        result = self._git("cat-file", "blob", oid, text=False, check=False)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise SnapshotReadError(f"Cannot read object {oid}: {stderr}")
        return result.stdout

    def add(self, path: str) -> None:
        self._git("add", "--", path)

    def add_all(self) -> None:
        self._git("add", "-A", "--", ".")

    def has_staged_changes(self) -> bool:
        if not self.has_commits():
            return bool(self.index_entries())
        return self._git("diff", "--cached", "--quiet", check=False).returncode == 1

    def remove_cached(self, path: str) -> None:
        self._git("rm", "--cached", "--quiet", "--ignore-unmatch", "--", path)

    def commit(self, message: str, *, allow_empty: bool = False) -> str:
        """Record the index as a new commit and return its id."""
        args = ["commit", "--quiet", "--no-verify", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        self._git(*args)
        oid = self.head()
        logger.debug("Committed %s in %s: %s", oid[:12], self.path, message)
        return oid
