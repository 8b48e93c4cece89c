"""Mutable references: branches, HEAD, remote mirrors and merge state."""

import json
import logging
import re
from dataclasses import dataclass

from .kv.base import KVStore
from .kv.memory import Memory

logger = logging.getLogger(__name__)

BRANCH_REF = "branches/%s"
HEAD_REF = "HEAD"
REMOTE_LOCATION = "remotes/%s/location"
REMOTE_MIRROR = "remotes/%s/branches/%s"
MERGE_STATE = "MERGE_STATE"

_NAME_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9._-]*")


def check_name(name: str, kind: str = "branch") -> str:
    """Validate a branch or remote name, returning it unchanged."""
    if (
        not isinstance(name, str)
        or not _NAME_RE.fullmatch(name)
        or name.endswith(".lock")
        or ".." in name
    ):
        raise ValueError(f"Invalid {kind} name: {name!r}")
    return name


@dataclass(frozen=True)
class Branch:
    """HEAD attached to a branch: commits advance that branch."""

    name: str


@dataclass(frozen=True)
class Detached:
    """HEAD pointing directly at a commit."""

    commit: str


Head = Branch | Detached


@dataclass(frozen=True)
class MergeState:
    """A three-way merge awaiting conflict resolution.

    ``parents`` is ``(target_tip, source_tip)``, the parent list the
    finalized merge commit will carry.
    """

    target: str
    parents: tuple[str, str]


def _encode_id(value: str | None) -> bytes | None:
    return None if value is None else value.encode()


def _decode_id(raw: bytes | None) -> str | None:
    return None if raw is None else raw.decode()


class RefStore:
    """Owner of every mutable pointer in a repository.

    Branch updates go through ``set_branch``, an atomic
    compare-and-swap on the backing store. Remote mirrors are advisory
    caches and are overwritten unconditionally.
    """

    def __init__(self, store: KVStore | None = None, *, default_branch: str = "main") -> None:
        if store is None:
            store = Memory()
        self.store = store
        self.default_branch = check_name(default_branch)

    # -- Branches --

    def get_branch(self, name: str) -> str | None:
        """Commit id the branch points at, or None if it does not exist."""
        return _decode_id(self.store.get(BRANCH_REF % check_name(name)))

    def set_branch(self, name: str, expected_old: str | None, new_value: str) -> bool:
        """Move a branch from ``expected_old`` to ``new_value``.

        ``expected_old=None`` means the branch must not exist yet.
        Returns False, changing nothing, if the stored value differs.
        """
        ok = self.store.cas(
            BRANCH_REF % check_name(name),
            new_value.encode(),
            expected=_encode_id(expected_old),
        )
        if ok:
            logger.debug("Branch %s: %s -> %s", name, expected_old, new_value)
        return ok

    def delete_branch(self, name: str) -> bool:
        """Remove a branch pointer. Returns False if it did not exist."""
        key = BRANCH_REF % check_name(name)
        if key not in self.store:
            return False
        self.store.remove(key)
        return True

    def branches(self) -> dict[str, str]:
        prefix = BRANCH_REF % ""
        result = {}
        for key in self.store.keys(prefix):
            value = _decode_id(self.store.get(key))
            if value is not None:
                result[key[len(prefix):]] = value
        return result

    # -- HEAD --

    def get_head(self) -> Head:
        raw = self.store.get(HEAD_REF)
        if raw is None:
            return Branch(self.default_branch)
        data = json.loads(raw)
        if "detached" in data:
            return Detached(data["detached"])
        return Branch(data["branch"])

    def set_head(self, value: Head) -> None:
        if isinstance(value, Branch):
            data = {"branch": check_name(value.name)}
        elif isinstance(value, Detached):
            data = {"detached": value.commit}
        else:
            raise TypeError(f"Expected Branch or Detached, got {type(value).__name__}")
        self.store.set(HEAD_REF, json.dumps(data).encode())

    # -- Remotes --

    def add_remote(self, name: str, location: str) -> bool:
        """Register a remote. Returns False if the name is taken."""
        return self.store.cas(
            REMOTE_LOCATION % check_name(name, "remote"),
            location.encode(),
            expected=None,
        )

    def get_remote(self, name: str) -> str | None:
        return _decode_id(self.store.get(REMOTE_LOCATION % check_name(name, "remote")))

    def remove_remote(self, name: str) -> bool:
        """Forget a remote and all of its mirrors."""
        key = REMOTE_LOCATION % check_name(name, "remote")
        if key not in self.store:
            return False
        for branch in self.remote_mirrors(name):
            self.remove_remote_mirror(name, branch)
        self.store.remove(key)
        return True

    def remotes(self) -> dict[str, str]:
        result = {}
        for key in self.store.keys("remotes/"):
            parts = key.split("/")
            if len(parts) == 3 and parts[2] == "location":
                result[parts[1]] = self.store.get(key).decode()
        return result

    def get_remote_mirror(self, remote: str, branch: str) -> str | None:
        return _decode_id(self.store.get(self._mirror_key(remote, branch)))

    def set_remote_mirror(self, remote: str, branch: str, commit: str) -> None:
        self.store.set(self._mirror_key(remote, branch), commit.encode())

    def remove_remote_mirror(self, remote: str, branch: str) -> None:
        self.store.remove(self._mirror_key(remote, branch))

    def remote_mirrors(self, remote: str) -> dict[str, str]:
        prefix = REMOTE_MIRROR % (check_name(remote, "remote"), "")
        result = {}
        for key in self.store.keys(prefix):
            value = _decode_id(self.store.get(key))
            if value is not None:
                result[key[len(prefix):]] = value
        return result

    # -- Merge state --

    def get_merge_state(self) -> MergeState | None:
        raw = self.store.get(MERGE_STATE)
        if raw is None:
            return None
        data = json.loads(raw)
        return MergeState(target=data["target"], parents=tuple(data["parents"]))

    def set_merge_state(self, state: MergeState | None) -> None:
        if state is None:
            self.store.remove(MERGE_STATE)
            return
        data = {"target": state.target, "parents": list(state.parents)}
        self.store.set(MERGE_STATE, json.dumps(data).encode())

    def _mirror_key(self, remote: str, branch: str) -> str:
        return REMOTE_MIRROR % (check_name(remote, "remote"), check_name(branch))
