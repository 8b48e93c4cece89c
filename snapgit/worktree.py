"""Working trees and snapshot archiving.

A working tree is whatever the user edits; a snapshot is the opaque
blob a commit stores. ``Archiver`` turns one into the other. The
repository only ever sees blobs and path -> bytes mappings.
"""

import fnmatch
import io
import os
import tarfile
from collections.abc import Iterator, MutableMapping
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Mapping, Protocol, runtime_checkable

from .errors import InvalidSnapshot

KeepFn = Callable[[str], bool]


@runtime_checkable
class WorkingTree(Protocol):
    """Files a repository snapshots from and restores into."""

    def files(self) -> dict[str, bytes]: ...
    def replace(self, files: Mapping[str, bytes], keep: KeepFn | None = None) -> None: ...


@runtime_checkable
class Archiver(Protocol):
    """Turns a working tree into a snapshot blob and back."""

    def snapshot(self, tree: WorkingTree) -> bytes: ...
    def restore(self, blob: bytes, tree: WorkingTree) -> None: ...
    def unpack(self, blob: bytes) -> dict[str, bytes]: ...


def is_ignored(path: str, patterns: Iterable[str]) -> bool:
    """Match a relative path against fnmatch patterns.

    A pattern ending in ``/`` matches a directory and everything in it.
    """
    norm = path.replace(os.sep, "/")
    for pattern in patterns:
        if pattern.endswith("/"):
            base = pattern.rstrip("/")
            if norm == base or norm.startswith(base + "/"):
                return True
        if fnmatch.fnmatchcase(norm, pattern):
            return True
    return False


def check_path(path: str) -> str:
    """Reject absolute paths and paths escaping the tree."""
    pure = PurePosixPath(path)
    if not path or pure.is_absolute() or ".." in pure.parts or "\\" in path:
        raise ValueError(f"Invalid tree path: {path!r}")
    return pure.as_posix()


class MemoryTree(MutableMapping[str, bytes]):
    """A working tree held in a dict of path -> content."""

    def __init__(self, files: Mapping[str, bytes] | None = None) -> None:
        self._files: dict[str, bytes] = {}
        for path, data in (files or {}).items():
            self[path] = data

    def files(self) -> dict[str, bytes]:
        return dict(self._files)

    def replace(self, files: Mapping[str, bytes], keep: KeepFn | None = None) -> None:
        kept = {p: v for p, v in self._files.items() if keep is not None and keep(p)}
        self._files = kept
        for path, data in files.items():
            self[path] = data

    def __getitem__(self, path: str) -> bytes:
        return self._files[path]

    def __setitem__(self, path: str, data: bytes) -> None:
        if not isinstance(data, bytes):
            raise TypeError(f"Expected bytes, got {type(data).__name__}")
        self._files[check_path(path)] = data

    def __delitem__(self, path: str) -> None:
        del self._files[path]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._files))

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"MemoryTree({sorted(self._files)!r})"


class DirectoryTree:
    """A working tree rooted at a directory on disk.

    The repository metadata directory (``.snapgit`` by default) is
    never read, cleared or written.
    """

    def __init__(self, root: str | os.PathLike, metadata_dir: str = ".snapgit") -> None:
        self.root = Path(root)
        self.metadata_dir = metadata_dir

    def files(self) -> dict[str, bytes]:
        return {path: (self.root / path).read_bytes() for path in self._walk()}

    def replace(self, files: Mapping[str, bytes], keep: KeepFn | None = None) -> None:
        for path in self._walk():
            if keep is not None and keep(path):
                continue
            (self.root / path).unlink()
        self._prune_empty_dirs()
        for path, data in files.items():
            target = self.root / check_path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

    def _walk(self) -> list[str]:
        if not self.root.is_dir():
            return []
        found = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root)
            if rel_dir == Path("."):
                dirnames[:] = [d for d in dirnames if d != self.metadata_dir]
            for name in filenames:
                found.append((rel_dir / name).as_posix())
        return sorted(found)

    def _prune_empty_dirs(self) -> None:
        for dirpath, _, _ in sorted(os.walk(self.root), reverse=True):
            path = Path(dirpath)
            rel = path.relative_to(self.root)
            if rel == Path(".") or rel.parts[0] == self.metadata_dir:
                continue
            if not any(path.iterdir()):
                path.rmdir()

    def __repr__(self) -> str:
        return f"DirectoryTree({str(self.root)!r})"


class TarArchiver:
    """Archive tracked files as a deterministic, uncompressed tar.

    Members are sorted and carry no timestamps or ownership, so equal
    trees always yield byte-identical snapshots (and so equal commit
    ids).

    Args:
        ignore: fnmatch patterns for untracked paths. Untracked files
            are left out of snapshots and left alone on restore.
    """

    def __init__(self, ignore: Iterable[str] = ()) -> None:
        self.ignore = tuple(ignore)

    def is_tracked(self, path: str) -> bool:
        return not is_ignored(path, self.ignore)

    def pack(self, files: Mapping[str, bytes]) -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for path in sorted(files):
                if not self.is_tracked(path):
                    continue
                data = files[path]
                info = tarfile.TarInfo(check_path(path))
                info.size = len(data)
                info.mode = 0o644
                info.mtime = 0
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                tar.addfile(info, io.BytesIO(data))
        return buf.getvalue()

    def unpack(self, blob: bytes) -> dict[str, bytes]:
        """Read a snapshot back into path -> content.

        Raises:
            InvalidSnapshot: If ``blob`` is not a readable tar archive.
        """
        files: dict[str, bytes] = {}
        try:
            with tarfile.open(fileobj=io.BytesIO(blob), mode="r:") as tar:
                for member in tar.getmembers():
                    if not member.isfile():
                        continue
                    handle = tar.extractfile(member)
                    if handle is None:
                        continue
                    files[check_path(member.name)] = handle.read()
        except tarfile.TarError as e:
            raise InvalidSnapshot(f"Snapshot is not a tar archive: {e}") from e
        return files

    def snapshot(self, tree: WorkingTree) -> bytes:
        return self.pack(tree.files())

    def restore(self, blob: bytes, tree: WorkingTree) -> None:
        tree.replace(self.unpack(blob), keep=lambda path: not self.is_tracked(path))
