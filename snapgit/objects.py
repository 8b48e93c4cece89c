"""Content-addressable, append-only storage of commit objects."""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from .errors import CorruptObject, ObjectNotFound
from .kv.base import KVStore
from .kv.memory import Memory

logger = logging.getLogger(__name__)

OBJECT_KEY = "objects/%s"
HASH_LENGTH = 16


@dataclass(frozen=True)
class Commit:
    """An immutable snapshot plus its ordered parent ids."""

    id: str
    snapshot: bytes
    parents: tuple[str, ...]

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


def encode_commit(snapshot: bytes, parents: Sequence[str]) -> bytes:
    """Encode a commit as a JSON header line followed by the raw snapshot."""
    header = json.dumps({"parents": list(parents)}, separators=(",", ":"))
    return header.encode() + b"\n" + snapshot


def decode_commit(data: bytes) -> tuple[bytes, tuple[str, ...]]:
    """Split encoded commit bytes into ``(snapshot, parents)``.

    Raises ValueError if the header is malformed.
    """
    header, sep, snapshot = data.partition(b"\n")
    if not sep:
        raise ValueError("Missing commit header")
    meta = json.loads(header)
    parents = meta.get("parents") if isinstance(meta, dict) else None
    if not isinstance(parents, list) or not all(isinstance(p, str) for p in parents):
        raise ValueError("Malformed parent list")
    return snapshot, tuple(parents)


def content_hash(data: bytes) -> str:
    """Hash encoded commit bytes to a 16-hex-char id."""
    return hashlib.sha256(data).hexdigest()[:HASH_LENGTH]


def commit_id(snapshot: bytes, parents: Sequence[str]) -> str:
    """The id ``put(snapshot, parents)`` would assign."""
    return content_hash(encode_commit(snapshot, parents))


class ObjectStore:
    """Append-only commit storage keyed by content hash.

    Objects are installed with a create-if-absent ``cas`` on the
    backing store, so a stored object is either wholly visible or not
    at all, and racing writers of the same commit are harmless.
    Every parent of a commit must be stored before the commit itself,
    which keeps the graph acyclic.
    """

    def __init__(self, store: KVStore | None = None) -> None:
        if store is None:
            store = Memory()
        self.store = store

    def put(self, snapshot: bytes, parents: Sequence[str] = ()) -> str:
        """Store a commit and return its id. Idempotent.

        Raises:
            ObjectNotFound: If any parent is not already stored.
        """
        if not isinstance(snapshot, bytes):
            raise TypeError(f"Expected bytes, got {type(snapshot).__name__}")
        data = encode_commit(snapshot, parents)
        return self._install(content_hash(data), data, tuple(parents))

    def admit(self, data: bytes, expected_id: str) -> str:
        """Store transferred commit bytes after verifying their id.

        Raises:
            CorruptObject: If ``data`` does not hash to ``expected_id``
                or cannot be decoded.
            ObjectNotFound: If any parent is not already stored.
        """
        actual = content_hash(data)
        if actual != expected_id:
            raise CorruptObject(expected_id, actual)
        try:
            _, parents = decode_commit(data)
        except ValueError as e:
            raise CorruptObject(expected_id, actual) from e
        return self._install(expected_id, data, parents)

    def get(self, object_id: str) -> Commit:
        """Load a stored commit.

        Raises:
            ObjectNotFound: If the id is not stored.
            CorruptObject: If the stored bytes cannot be decoded.
        """
        data = self.raw(object_id)
        try:
            snapshot, parents = decode_commit(data)
        except ValueError as e:
            raise CorruptObject(object_id, content_hash(data)) from e
        return Commit(id=object_id, snapshot=snapshot, parents=parents)

    def raw(self, object_id: str) -> bytes:
        """Encoded bytes of a stored commit, as sent over the wire."""
        data = self.store.get(OBJECT_KEY % object_id)
        if data is None:
            raise ObjectNotFound(object_id)
        return data

    def parents(self, object_id: str) -> tuple[str, ...]:
        return self.get(object_id).parents

    def has(self, object_id: str) -> bool:
        return OBJECT_KEY % object_id in self.store

    __contains__ = has

    def verify(self, object_id: str) -> bool:
        """Recompute the hash of a stored commit.

        Raises:
            CorruptObject: If the content no longer matches its id.
        """
        actual = content_hash(self.raw(object_id))
        if actual != object_id:
            raise CorruptObject(object_id, actual)
        return True

    def ids(self) -> Iterator[str]:
        prefix = OBJECT_KEY % ""
        for key in self.store.keys(prefix):
            yield key[len(prefix):]

    def ancestors(self, heads: Iterable[str]) -> set[str]:
        """All commits reachable from ``heads`` (inclusive)."""
        seen: set[str] = set()
        stack = [h for h in heads if h is not None]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(p for p in self.parents(current) if p not in seen)
        return seen

    def _install(self, object_id: str, data: bytes, parents: tuple[str, ...]) -> str:
        for parent in parents:
            if not self.has(parent):
                raise ObjectNotFound(parent)
        if self.store.cas(OBJECT_KEY % object_id, data, expected=None):
            logger.debug("Stored object %s (parents=%s)", object_id, parents)
        return object_id
