"""snapgit: a distributed snapshot-history engine."""

from .diffpatch import Change, Changeset, PatchResult, TextPatcher, diff
from .errors import (
    BranchAlreadyExists,
    BranchNotFound,
    ConcurrencyError,
    ConcurrentBranchUpdate,
    CorruptObject,
    CorruptTransfer,
    InvalidSnapshot,
    MergeInProgress,
    NoMergeBase,
    NoMergeInProgress,
    NonFastForwardRejected,
    ObjectNotFound,
    RemoteAlreadyExists,
    RemoteNotFound,
    RemoteUnreachable,
    SnapgitError,
    UncommittedChanges,
)
from .kv.base import KVStore
from .merge import MergeEngine, MergeResult
from .objects import Commit, ObjectStore
from .refs import Branch, Detached, Head, MergeState, RefStore
from .remote import CasResult, LocalEndpoint, RemoteEndpoint, connect
from .repository import DiffResult, Repository
from .store import repository
from .sync import FetchResult, PushResult, RemoteSync
from .worktree import Archiver, DirectoryTree, MemoryTree, TarArchiver, WorkingTree

__all__ = [
    "Archiver",
    "Branch",
    "BranchAlreadyExists",
    "BranchNotFound",
    "CasResult",
    "Change",
    "Changeset",
    "Commit",
    "ConcurrencyError",
    "ConcurrentBranchUpdate",
    "CorruptObject",
    "CorruptTransfer",
    "Detached",
    "DiffResult",
    "DirectoryTree",
    "FetchResult",
    "Head",
    "InvalidSnapshot",
    "KVStore",
    "LocalEndpoint",
    "MemoryTree",
    "MergeEngine",
    "MergeInProgress",
    "MergeResult",
    "MergeState",
    "NoMergeBase",
    "NoMergeInProgress",
    "NonFastForwardRejected",
    "ObjectNotFound",
    "ObjectStore",
    "PatchResult",
    "PushResult",
    "RefStore",
    "RemoteAlreadyExists",
    "RemoteEndpoint",
    "RemoteNotFound",
    "RemoteSync",
    "RemoteUnreachable",
    "Repository",
    "SnapgitError",
    "TarArchiver",
    "TextPatcher",
    "UncommittedChanges",
    "WorkingTree",
    "connect",
    "diff",
    "repository",
]
