"""Merge engine: merge bases, fast-forwards and three-way merges."""

import logging
from dataclasses import dataclass

from .diffpatch import Patcher, TextPatcher, diff
from .errors import (
    ConcurrentBranchUpdate,
    MergeInProgress,
    NoMergeBase,
    NoMergeInProgress,
    UncommittedChanges,
)
from .refs import Branch, Head, MergeState
from .repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    """Result of a merge operation."""

    merged: bool
    commit: str | None
    strategy: str  # "no_op", "fast_forward", "three_way", "conflicts_pending"
    base: str | None
    conflicts: tuple[str, ...] = ()

    @property
    def pending(self) -> bool:
        return self.strategy == "conflicts_pending"

    def __bool__(self) -> bool:
        return self.merged


class MergeEngine:
    """Reconciles a branch with another line of history.

    ``merge()`` picks the cheapest correct strategy: nothing to do when
    the source is already contained in the target, a pointer move when
    the target is contained in the source, and otherwise a three-way
    merge through the repository's working tree. A three-way merge with
    overlapping changes leaves the repository in a pending-merge state
    until ``finalize()`` or ``abort()``.
    """

    def __init__(self, repo: Repository, patcher: Patcher | None = None) -> None:
        self.repo = repo
        self.objects = repo.objects
        self.refs = repo.refs
        self.patcher = patcher if patcher is not None else TextPatcher()

    # -- Merge bases --

    def find_merge_base(self, commit_a: str, commit_b: str) -> str:
        """The most recent commit reachable from both.

        When several maximal common ancestors exist, the one with the
        longest chain back to a root wins; ties go to the smallest id.

        Raises:
            NoMergeBase: If the commits share no history.
        """
        bases = self.merge_bases(commit_a, commit_b)
        if not bases:
            raise NoMergeBase(commit_a, commit_b)
        return bases[0]

    def merge_bases(self, commit_a: str, commit_b: str) -> list[str]:
        """All maximal common ancestors, best candidate first."""
        if commit_a == commit_b:
            return [commit_a]
        reach_a = self.objects.ancestors([commit_a])

        # Walk back from b, stopping at the first common commit on each path
        candidates: set[str] = set()
        seen: set[str] = set()
        stack = [commit_b]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current in reach_a:
                candidates.add(current)
                continue
            stack.extend(self.objects.parents(current))

        # Drop candidates that are ancestors of other candidates
        dominated = self.objects.ancestors(
            p for c in candidates for p in self.objects.parents(c)
        )
        maximal = candidates - dominated

        generations: dict[str, int] = {}
        return sorted(maximal, key=lambda c: (-self._generation(c, generations), c))

    def _generation(self, commit: str, memo: dict[str, int]) -> int:
        """Length of the longest parent chain from ``commit`` to a root."""
        stack = [commit]
        while stack:
            current = stack[-1]
            if current in memo:
                stack.pop()
                continue
            parents = self.objects.parents(current)
            missing = [p for p in parents if p not in memo]
            if missing:
                stack.extend(missing)
                continue
            memo[current] = 1 + max((memo[p] for p in parents), default=-1)
            stack.pop()
        return memo[commit]

    # -- Merging --

    def merge(self, target: str, source: "Head | str") -> MergeResult:
        """Merge ``source`` (branch, mirror or commit) into branch ``target``.

        A fast-forward of a branch that is not checked out only moves the
        pointer. A three-way merge always runs in the working tree, so
        it first checks out ``target``: HEAD is left on ``target``
        afterwards, even if another branch was checked out before.

        Raises:
            MergeInProgress: If another merge awaits resolution.
            ConcurrentBranchUpdate: If ``target`` moved during the merge.
            UncommittedChanges: If the working tree would be overwritten.
            NoMergeBase: If the two histories are unrelated.
            InvalidSnapshot: If a three-way merge meets a snapshot the
                archiver cannot read.
        """
        if self.refs.get_merge_state() is not None:
            raise MergeInProgress("A merge is pending; finalize or abort it first")
        target_tip = self.repo.branch_tip(target)
        source_tip = self.repo.resolve(source)
        base = self.find_merge_base(target_tip, source_tip)

        if base == source_tip:
            logger.debug("%s already contains %s", target, source_tip)
            return MergeResult(merged=True, commit=target_tip, strategy="no_op", base=base)

        checked_out = self.repo.head == Branch(target)
        if base == target_tip:
            if checked_out:
                self._require_clean(target)
            return self._fast_forward(target, target_tip, source_tip, checked_out)

        # the working tree is reseeded from the target tip
        self._require_clean(target)
        return self._three_way(target, target_tip, source_tip, base)

    def _require_clean(self, target: str) -> None:
        if not self.repo.is_clean():
            raise UncommittedChanges(
                f"Commit or discard changes before merging into {target}"
            )

    def _fast_forward(
        self, target: str, target_tip: str, source_tip: str, checked_out: bool
    ) -> MergeResult:
        self._advance(target, target_tip, source_tip)
        if checked_out:
            self.repo.materialize(source_tip)
            self.repo.refresh()
        logger.info("Fast-forwarded %s to %s", target, source_tip)
        return MergeResult(
            merged=True, commit=source_tip, strategy="fast_forward", base=target_tip
        )

    def _three_way(
        self, target: str, target_tip: str, source_tip: str, base: str
    ) -> MergeResult:
        changes = diff(self.repo.files(base), self.repo.files(source_tip))
        self.repo.checkout(Branch(target))
        patched = self.patcher.apply(changes, self.repo.worktree.files())
        self.repo.worktree.replace(patched.files)

        if not patched.clean:
            self.refs.set_merge_state(MergeState(target, (target_tip, source_tip)))
            logger.warning(
                "Merge of %s into %s left conflicts in %s",
                source_tip, target, ", ".join(patched.conflicts),
            )
            return MergeResult(
                merged=False,
                commit=None,
                strategy="conflicts_pending",
                base=base,
                conflicts=patched.conflicts,
            )

        commit = self._record(target, target_tip, source_tip, self.repo.snapshot())
        logger.info("Merged %s into %s as %s", source_tip, target, commit)
        return MergeResult(merged=True, commit=commit, strategy="three_way", base=base)

    def finalize(self, snapshot: bytes | None = None) -> MergeResult:
        """Commit a resolved pending merge.

        The merge commit's parents are ``[target_tip, source_tip]``.

        Args:
            snapshot: The resolved snapshot. Defaults to archiving the
                working tree.

        Raises:
            NoMergeInProgress: If no merge is pending.
            ConcurrentBranchUpdate: If the target branch moved; the
                merge stays pending.
        """
        state = self.refs.get_merge_state()
        if state is None:
            raise NoMergeInProgress("No merge to finalize")
        target_tip, source_tip = state.parents
        if snapshot is None:
            snapshot = self.repo.snapshot()
        commit = self._record(state.target, target_tip, source_tip, snapshot)
        self.refs.set_merge_state(None)
        logger.info("Finalized merge of %s into %s as %s", source_tip, state.target, commit)
        return MergeResult(
            merged=True,
            commit=commit,
            strategy="three_way",
            base=self.find_merge_base(target_tip, source_tip),
        )

    def abort(self) -> None:
        """Drop a pending merge and restore the target branch's tree."""
        state = self.refs.get_merge_state()
        if state is None:
            raise NoMergeInProgress("No merge to abort")
        self.refs.set_merge_state(None)
        self.repo.checkout(Branch(state.target))
        logger.info("Aborted merge into %s", state.target)

    # -- Internal --

    def _record(self, target: str, target_tip: str, source_tip: str, snapshot: bytes) -> str:
        commit = self.objects.put(snapshot, [target_tip, source_tip])
        self._advance(target, target_tip, commit)
        self.repo.refresh()
        return commit

    def _advance(self, target: str, old: str, new: str) -> None:
        if not self.refs.set_branch(target, old, new):
            raise ConcurrentBranchUpdate(target, old, self.refs.get_branch(target))
