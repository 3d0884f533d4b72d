"""Three-way comparison of a snapshot, the index and the working tree.

Each row uses the numeric encoding popularised by isomorphic-git:

    head     0 absent from the snapshot, 1 present
    workdir  0 absent, 1 identical to the snapshot, 2 different
    stage    0 absent, 1 identical to the snapshot, 2 identical to the
             working tree, 3 different from both

Entries compare by mode and blob id, so a lost executable bit or a symlink
turned into a regular file counts as a difference. Ignored, untracked files
never appear.
"""

from __future__ import annotations

from dataclasses import dataclass

from appdeck.versions.git import GitRepository, TreeEntry


@dataclass(frozen=True)
class StatusRow:
    path: str
    head: int
    workdir: int
    stage: int
    target: TreeEntry | None = None

    @property
    def target_oid(self) -> str | None:
        return self.target.oid if self.target else None

    def as_tuple(self) -> tuple[str, int, int, int]:
        return (self.path, self.head, self.workdir, self.stage)


def status_matrix(git: GitRepository, ref: str) -> list[StatusRow]:
    """Compare *ref*'s tree with the index and the working tree, sorted by path."""
    tree = git.tree_entries(ref)
    index = git.index_entries()
    work = git.hash_files(git.worktree_files())

    rows: list[StatusRow] = []
    for path in sorted(set(tree) | set(index) | set(work)):
        target = tree.get(path)
        work_entry = work.get(path)
        staged = index.get(path)

        if work_entry is None:
            workdir = 0
        elif work_entry == target:
            workdir = 1
        else:
            workdir = 2

        if staged is None:
            stage = 0
        elif staged == target:
            stage = 1
        elif staged == work_entry:
            stage = 2
        else:
            stage = 3

        rows.append(
            StatusRow(
                path=path,
                head=1 if target else 0,
                workdir=workdir,
                stage=stage,
                target=target,
            )
        )
    return rows
