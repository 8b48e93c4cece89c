"""Repository factory: the one place storage and collaborators are chosen."""

import os
from typing import Iterable, Literal

from .kv.base import KVStore
from .repository import Repository
from .worktree import DirectoryTree, TarArchiver, WorkingTree


def repository(
    kind: Literal["memory", "disk", "directory"] = "memory",
    *,
    path: str | os.PathLike | None = None,
    worktree: WorkingTree | str | os.PathLike | None = None,
    ignore: Iterable[str] = (),
    branch: str = "main",
) -> Repository:
    """Create a Repository with sensible defaults.

    Args:
        kind: ``"memory"`` (default), ``"disk"`` (diskcache/SQLite) or
            ``"directory"`` (one file per object and ref).
        path: Required for ``"disk"`` and ``"directory"``. Directory
            holding the repository's objects and refs.
        worktree: A ``WorkingTree``, or a directory path to use as one.
            Defaults to an in-memory tree.
        ignore: fnmatch patterns left out of snapshots.
        branch: Branch HEAD attaches to in a fresh repository.

    Returns:
        A ``Repository`` instance.
    """
    backend: KVStore
    if kind == "memory":
        from .kv.memory import Memory

        backend = Memory()
    elif kind in ("disk", "directory"):
        if path is None:
            raise ValueError(f"path is required when kind={kind!r}")
        if kind == "disk":
            from .kv.disk import Disk

            backend = Disk(os.fspath(path))
        else:
            from .kv.directory import Directory

            backend = Directory(path)
    else:
        raise ValueError(f"Unknown kind: {kind!r}")

    if isinstance(worktree, (str, os.PathLike)):
        worktree = DirectoryTree(worktree)

    return Repository(
        backend,
        worktree=worktree,
        archiver=TarArchiver(ignore),
        default_branch=branch,
    )
