"""Fetch and push between a repository and its remotes."""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable

from .errors import CorruptTransfer, NonFastForwardRejected
from .merge import MergeEngine, MergeResult
from .objects import ObjectStore, content_hash, decode_commit
from .refs import Branch
from .remote import Connector, connect
from .repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """What a fetch changed locally.

    ``updated`` maps branch name to ``(old_mirror, new_mirror)`` for
    every mirror that moved.
    """

    remote: str
    objects: tuple[str, ...]
    updated: dict[str, tuple[str | None, str]] = field(default_factory=dict)
    pruned: tuple[str, ...] = ()


@dataclass(frozen=True)
class PushResult:
    remote: str
    branch: str
    old: str | None
    new: str
    objects: tuple[str, ...]

    @property
    def up_to_date(self) -> bool:
        return self.old == self.new


def ancestor_order(
    commits: Iterable[str], parents_of: Callable[[str], Iterable[str]]
) -> list[str]:
    """Order ``commits`` so every parent in the set precedes its children."""
    pending = set(commits)
    ordered: list[str] = []
    done: set[str] = set()
    for start in sorted(pending):
        stack = [(start, False)]
        while stack:
            current, expanded = stack.pop()
            if current in done:
                continue
            if expanded:
                done.add(current)
                ordered.append(current)
                continue
            stack.append((current, True))
            for p in parents_of(current):
                if p in pending and p not in done:
                    stack.append((p, False))
    return ordered


class RemoteSync:
    """Moves history between ``repo`` and the remotes it has registered.

    ``fetch()`` only ever touches remote mirrors; local branches change
    through ``pull()`` (fetch then merge) or explicit merges. ``push()``
    uploads objects parents-first and then advances the remote branch
    with a compare-and-swap against the last fetched mirror.

    Args:
        repo: The local repository.
        connector: Opens a ``RemoteEndpoint`` for a remote location.
    """

    def __init__(self, repo: Repository, connector: Connector = connect) -> None:
        self.repo = repo
        self.connector = connector

    def fetch(
        self,
        remote: str,
        *,
        branches: Iterable[str] | None = None,
        prune: bool = False,
    ) -> FetchResult:
        """Download missing history and refresh the remote's mirrors.

        Every needed object is downloaded and verified before any is
        installed, so a failed fetch leaves the repository unchanged.

        Args:
            remote: Registered remote name.
            branches: Restrict to these remote branches (default: all).
            prune: Drop mirrors of branches the remote no longer has.

        Raises:
            RemoteNotFound: If ``remote`` is not registered.
            RemoteUnreachable: If the transport fails.
            CorruptTransfer: If any object fails verification.
        """
        endpoint = self.connector(self.repo.remote_location(remote))
        objects = self.repo.objects
        refs = self.repo.refs

        remote_branches = endpoint.list_branches()
        if branches is not None:
            wanted = set(branches)
            remote_branches = {k: v for k, v in remote_branches.items() if k in wanted}
        tips = set(remote_branches.values())

        need = [
            oid
            for oid in endpoint.list_missing(sorted(tips), objects.ids())
            if not objects.has(oid)
        ]
        logger.debug("Fetching %d objects from %s", len(need), remote)

        # Stage everything before installing anything
        staged: dict[str, tuple[bytes, tuple[str, ...]]] = {}
        for oid in need:
            data = endpoint.get_object(oid)
            staged[oid] = (data, _verify_transfer(oid, data))
        for oid, (_, parents) in staged.items():
            for p in parents:
                if p not in staged and not objects.has(p):
                    raise CorruptTransfer(oid, f"parent {p} was not transferred")
        for tip in tips:
            if tip not in staged and not objects.has(tip):
                raise CorruptTransfer(tip, "branch tip was not transferred")

        installed: list[str] = []
        updated: dict[str, tuple[str | None, str]] = {}
        for name in sorted(remote_branches):
            tip = remote_branches[name]
            reachable = _reachable_within(tip, staged)
            for oid in ancestor_order(reachable, lambda o: staged[o][1]):
                if not objects.has(oid):
                    objects.admit(staged[oid][0], oid)
                    installed.append(oid)
            old = refs.get_remote_mirror(remote, name)
            if old != tip:
                refs.set_remote_mirror(remote, name, tip)
                updated[name] = (old, tip)

        pruned: list[str] = []
        if prune and branches is None:
            for name in refs.remote_mirrors(remote):
                if name not in remote_branches:
                    refs.remove_remote_mirror(remote, name)
                    pruned.append(name)

        logger.info(
            "Fetched %s: %d objects, %d mirrors updated",
            remote, len(installed), len(updated),
        )
        return FetchResult(
            remote=remote,
            objects=tuple(installed),
            updated=updated,
            pruned=tuple(pruned),
        )

    def push(self, remote: str, branch: str) -> PushResult:
        """Upload a local branch and fast-forward the remote branch to it.

        The remote branch moves only if it still holds the value last
        fetched into the mirror.

        Raises:
            BranchNotFound: If the local branch does not exist.
            NonFastForwardRejected: If the local branch does not contain
                the last known remote tip, or the remote moved since.
            RemoteUnreachable: If the transport fails.
        """
        endpoint = self.connector(self.repo.remote_location(remote))
        objects = self.repo.objects
        local_tip = self.repo.branch_tip(branch)
        mirror = self.repo.refs.get_remote_mirror(remote, branch)

        if mirror == local_tip:
            return PushResult(remote, branch, mirror, local_tip, ())
        outgoing, contains_mirror = _outgoing(objects, local_tip, mirror)
        if not contains_mirror:
            raise NonFastForwardRejected(branch, mirror, mirror)

        order = ancestor_order(outgoing, objects.parents)
        for oid in order:
            objects.verify(oid)
            endpoint.put_object(oid, objects.raw(oid))

        result = endpoint.cas_update_branch(branch, mirror, local_tip)
        if not result:
            logger.info("Push of %s to %s rejected: remote at %s", branch, remote, result.actual)
            raise NonFastForwardRejected(branch, mirror, result.actual)

        self.repo.refs.set_remote_mirror(remote, branch, local_tip)
        logger.info("Pushed %s to %s: %s -> %s", branch, remote, mirror, local_tip)
        return PushResult(remote, branch, mirror, local_tip, tuple(order))

    def pull(self, remote: str, branch: str, *, into: str | None = None) -> MergeResult:
        """Fetch ``branch`` from ``remote`` and merge it into a local branch.

        Args:
            into: Local branch to merge into (default: same name). It is
                created at the fetched tip if it does not exist.
        """
        target = into or branch
        self.fetch(remote, branches=[branch])
        mirror = f"{remote}/{branch}"
        if self.repo.refs.get_branch(target) is None:
            tip = self.repo.create_branch(target, at=mirror)
            return MergeResult(merged=True, commit=tip, strategy="fast_forward", base=None)
        return MergeEngine(self.repo).merge(target, mirror)

    def clone(self, location: str, *, remote: str = "origin", branch: str | None = None) -> str | None:
        """Populate an empty repository from ``location``.

        Registers ``remote``, fetches everything and checks out
        ``branch`` (default: the repository's default branch if the
        remote has it, else its first branch).

        Returns:
            The checked-out commit, or None if the remote is empty.
        """
        self.repo.add_remote(remote, location)
        fetched = self.fetch(remote)
        mirrors = self.repo.refs.remote_mirrors(remote)
        if not mirrors:
            return None
        if branch is None:
            default = self.repo.refs.default_branch
            branch = default if default in mirrors else sorted(mirrors)[0]
        self.repo.create_branch(branch, at=f"{remote}/{branch}")
        commit = self.repo.checkout(Branch(branch))
        logger.info("Cloned %s (%d objects), on %s", location, len(fetched.objects), branch)
        return commit


def _verify_transfer(object_id: str, data: bytes) -> tuple[str, ...]:
    actual = content_hash(data)
    if actual != object_id:
        raise CorruptTransfer(object_id, f"content hashes to {actual}")
    try:
        _, parents = decode_commit(data)
    except ValueError as e:
        raise CorruptTransfer(object_id, str(e)) from e
    return parents


def _outgoing(
    objects: ObjectStore, tip: str, known: str | None
) -> tuple[set[str], bool]:
    """Commits reachable from ``tip`` but not from ``known``.

    Walks back from ``tip`` and from ``known`` in lockstep. The walk
    from ``tip`` stops at commits the other walk has already reached,
    so only the new part of the history and a matching stretch behind
    ``known`` are visited. A commit visited before the other walk got
    to it may be included; uploading it again is harmless.

    Returns:
        The outgoing commits, and whether ``known`` was reached from
        ``tip`` (that is, whether ``tip`` contains it).
    """
    if known is None:
        return objects.ancestors([tip]), True
    outgoing: set[str] = set()
    behind: set[str] = {known}
    local: deque[str] = deque([tip])
    remote: deque[str] = deque(objects.parents(known))
    reached = False
    while local:
        current = local.popleft()
        if current == known:
            reached = True
        elif current not in behind and current not in outgoing:
            outgoing.add(current)
            local.extend(objects.parents(current))
        if remote:
            older = remote.popleft()
            if older not in behind:
                behind.add(older)
                remote.extend(objects.parents(older))
    return outgoing - behind, reached


def _reachable_within(tip: str, staged: dict[str, tuple[bytes, tuple[str, ...]]]) -> set[str]:
    found: set[str] = set()
    stack = [tip]
    while stack:
        current = stack.pop()
        if current in found or current not in staged:
            continue
        found.add(current)
        stack.extend(staged[current][1])
    return found
