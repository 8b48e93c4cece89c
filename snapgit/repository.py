"""Repository: an object store and a ref store over one KV store."""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Sequence

from .diffpatch import diff as diff_files
from .errors import (
    BranchAlreadyExists,
    BranchNotFound,
    ConcurrentBranchUpdate,
    InvalidSnapshot,
    MergeInProgress,
    ObjectNotFound,
    RemoteAlreadyExists,
    RemoteNotFound,
)
from .kv.base import KVStore
from .kv.memory import Memory
from .objects import HASH_LENGTH, ObjectStore
from .refs import Branch, Detached, Head, MergeState, RefStore, check_name
from .worktree import Archiver, MemoryTree, TarArchiver, WorkingTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffResult:
    """Path-level differences between two commits."""

    added: frozenset[str]
    removed: frozenset[str]
    modified: frozenset[str]


class Repository:
    """A snapshot history with branches, HEAD and a working tree.

    ``commit()`` / ``checkout()`` move HEAD and the working tree;
    ``create_branch()`` / ``delete_branch()`` manage pointers;
    ``history()`` / ``diff()`` read the commit graph.

    HEAD is resolved once and cached. ``commit()`` advances the branch
    from that cached tip by compare-and-swap, so if another writer
    moved the branch in the meantime the commit is refused with
    ``ConcurrentBranchUpdate`` and the caller must ``refresh()``.
    """

    def __init__(
        self,
        store: KVStore | None = None,
        *,
        worktree: WorkingTree | None = None,
        archiver: Archiver | None = None,
        default_branch: str = "main",
    ) -> None:
        if store is None:
            store = Memory()
        self.store = store
        self.objects = ObjectStore(store)
        self.refs = RefStore(store, default_branch=default_branch)
        self.worktree = worktree if worktree is not None else MemoryTree()
        self.archiver = archiver if archiver is not None else TarArchiver()
        self._head: Head = Branch(default_branch)
        self._base: str | None = None
        self.refresh()

    @property
    def head(self) -> Head:
        return self._head

    @property
    def current_commit(self) -> str | None:
        """The commit HEAD resolved to when last refreshed (None if unborn)."""
        return self._base

    @property
    def merge_state(self) -> MergeState | None:
        return self.refs.get_merge_state()

    def refresh(self) -> None:
        """Re-read HEAD and its commit from the store."""
        self._head = self.refs.get_head()
        if isinstance(self._head, Detached):
            self._base = self._head.commit
        else:
            self._base = self.refs.get_branch(self._head.name)

    # -- Ref resolution --

    def resolve(self, ref: "Head | str") -> str:
        """Resolve a branch, ``<remote>/<branch>`` mirror or commit id.

        Raises:
            BranchNotFound: If a branch or mirror name does not exist.
            ObjectNotFound: If a commit id is not stored.
        """
        if isinstance(ref, Branch):
            return self.branch_tip(ref.name)
        if isinstance(ref, Detached):
            if not self.objects.has(ref.commit):
                raise ObjectNotFound(ref.commit)
            return ref.commit
        if "/" in ref:
            remote, _, branch = ref.partition("/")
            try:
                commit = self.refs.get_remote_mirror(remote, branch)
            except ValueError:
                commit = None
            if commit is None:
                raise BranchNotFound(ref)
            return commit
        try:
            commit = self.refs.get_branch(ref)
        except ValueError:
            commit = None
        if commit is not None:
            return commit
        if self.objects.has(ref):
            return ref
        if _looks_like_id(ref):
            raise ObjectNotFound(ref)
        raise BranchNotFound(ref)

    def branch_tip(self, name: str) -> str:
        commit = self.refs.get_branch(name)
        if commit is None:
            raise BranchNotFound(name)
        return commit

    # -- Commits --

    def snapshot(self) -> bytes:
        """Archive the working tree into a snapshot blob."""
        return self.archiver.snapshot(self.worktree)

    def commit(
        self,
        snapshot: bytes | None = None,
        extra_parents: Sequence[str] = (),
    ) -> str:
        """Record a commit on top of HEAD.

        Args:
            snapshot: The snapshot blob. Defaults to archiving the
                working tree.
            extra_parents: Further parents after HEAD's commit.

        Returns:
            The new commit id.

        Raises:
            ConcurrentBranchUpdate: If HEAD's branch moved since it was
                last resolved.
            MergeInProgress: If a merge awaits finalization.
        """
        if self.refs.get_merge_state() is not None:
            raise MergeInProgress("A merge is pending; finalize or abort it first")
        return self._commit(snapshot, extra_parents)

    def _commit(self, snapshot: bytes | None, extra_parents: Sequence[str]) -> str:
        if snapshot is None:
            snapshot = self.snapshot()
        head, base = self._head, self._base
        parents = ([base] if base is not None else []) + list(extra_parents)
        new_commit = self.objects.put(snapshot, parents)

        if isinstance(head, Branch):
            if not self.refs.set_branch(head.name, base, new_commit):
                raise ConcurrentBranchUpdate(
                    head.name, base, self.refs.get_branch(head.name)
                )
            logger.debug("Committed %s on %s", new_commit, head.name)
            self._base = new_commit
        else:
            self._head = Detached(new_commit)
            self._base = new_commit
            self.refs.set_head(self._head)
            logger.debug("Committed %s on detached HEAD", new_commit)
        return new_commit

    def checkout(self, target: "Head | str") -> str:
        """Switch HEAD and the working tree to a branch or commit.

        A ``Branch`` or the name of an existing branch attaches HEAD to
        it. Anything else resolving to a commit detaches HEAD there.

        Returns:
            The commit now checked out.
        """
        if self.refs.get_merge_state() is not None:
            raise MergeInProgress("A merge is pending; finalize or abort it first")
        if isinstance(target, Branch):
            new_head: Head = target
        elif isinstance(target, str) and self._is_branch(target):
            new_head = Branch(target)
        else:
            new_head = Detached(self.resolve(target))
        commit = self.resolve(new_head)
        self.materialize(commit)
        self.refs.set_head(new_head)
        self._head, self._base = new_head, commit
        if isinstance(new_head, Detached):
            logger.warning("HEAD is now detached at %s", commit)
        else:
            logger.info("Switched to branch %s at %s", new_head.name, commit)
        return commit

    def materialize(self, commit: str) -> None:
        """Replace the tracked working tree with a commit's snapshot.

        A snapshot the archiver cannot read (one committed as raw bytes)
        has no file form; the working tree is left as it is.
        """
        try:
            self.archiver.restore(self.objects.get(commit).snapshot, self.worktree)
        except InvalidSnapshot:
            logger.warning("Snapshot of %s is not an archive; working tree unchanged", commit)

    def _is_branch(self, name: str) -> bool:
        try:
            return self.refs.get_branch(name) is not None
        except ValueError:
            return False

    # -- Branches --

    def create_branch(self, name: str, at: "Head | str | None" = None) -> str:
        """Create a branch at ``at`` (default: HEAD's commit).

        Raises:
            BranchAlreadyExists: If the name is taken.
        """
        check_name(name)
        if at is None:
            if self._base is None:
                raise BranchNotFound(getattr(self._head, "name", str(self._head)))
            commit = self._base
        else:
            commit = self.resolve(at)
        if not self.refs.set_branch(name, None, commit):
            raise BranchAlreadyExists(name)
        logger.info("Created branch %s at %s", name, commit)
        return commit

    def delete_branch(self, name: str) -> None:
        """Remove a branch pointer. Its commits stay in the store."""
        if self._head == Branch(name):
            raise ValueError(f"Cannot delete the checked-out branch '{name}'")
        if not self.refs.delete_branch(name):
            raise BranchNotFound(name)
        logger.info("Deleted branch %s", name)

    def list_branches(self) -> list[str]:
        return sorted(self.refs.branches())

    # -- Remotes --

    def add_remote(self, name: str, location: str) -> None:
        if not self.refs.add_remote(name, location):
            raise RemoteAlreadyExists(name)

    def remove_remote(self, name: str) -> None:
        if not self.refs.remove_remote(name):
            raise RemoteNotFound(name)

    def remote_location(self, name: str) -> str:
        location = self.refs.get_remote(name)
        if location is None:
            raise RemoteNotFound(name)
        return location

    def remotes(self) -> dict[str, str]:
        return self.refs.remotes()

    # -- History --

    def history(
        self,
        commit: str | None = None,
        *,
        all_parents: bool = False,
    ) -> Iterable[str]:
        """Yield the commit chain from newest to oldest.

        Args:
            commit: Starting commit (default: HEAD).
            all_parents: If True, BFS over all parents (full DAG).
                If False, follow first parent only (linear).
        """
        start = commit or self._base
        if start is None:
            return
        if not all_parents:
            current: str | None = start
            while current is not None:
                yield current
                parents = self.objects.parents(current)
                current = parents[0] if parents else None
        else:
            visited: set[str] = set()
            queue: deque[str] = deque([start])
            while queue:
                current = queue.popleft()
                if current in visited:
                    continue
                visited.add(current)
                yield current
                for p in self.objects.parents(current):
                    if p not in visited:
                        queue.append(p)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """True if ``ancestor`` is reachable from ``descendant`` (or equal)."""
        return ancestor in self.objects.ancestors([descendant])

    def files(self, ref: "Head | str | None" = None) -> dict[str, bytes]:
        """Unpack the snapshot of a commit (default: HEAD)."""
        commit = self._base if ref is None else self.resolve(ref)
        if commit is None:
            return {}
        return self.archiver.unpack(self.objects.get(commit).snapshot)

    def is_clean(self) -> bool:
        """True if the tracked working tree matches HEAD's snapshot.

        A HEAD snapshot the archiver cannot read has nothing to compare
        against and counts as clean.
        """
        try:
            committed = self.files()
        except InvalidSnapshot:
            return True
        return self.archiver.unpack(self.snapshot()) == committed

    def diff(self, commit_a: str, commit_b: str) -> DiffResult:
        """Compute path-level differences going from commit_a to commit_b."""
        changes = diff_files(self.files(commit_a), self.files(commit_b))
        added, removed, modified = set(), set(), set()
        for change in changes:
            if change.old is None:
                added.add(change.path)
            elif change.new is None:
                removed.add(change.path)
            else:
                modified.add(change.path)
        return DiffResult(
            added=frozenset(added),
            removed=frozenset(removed),
            modified=frozenset(modified),
        )

    def __repr__(self) -> str:
        if isinstance(self._head, Branch):
            return f"Repository(branch={self._head.name!r}, commit={self._base!r})"
        return f"Repository(detached={self._base!r})"


def _looks_like_id(ref: str) -> bool:
    return len(ref) == HASH_LENGTH and all(c in "0123456789abcdef" for c in ref)
