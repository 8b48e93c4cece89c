"""Directory-backed KV store: one file per key."""

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Iterable

from .base import KVStore, check_bytes

TEMP_PREFIX = ".tmp-"
LOCK_SUFFIX = ".lock"


class Directory(KVStore):
    """KV store laid out as plain files under ``root``.

    Keys are ``/``-separated relative paths. Every write goes to a
    hidden temp file beside its destination and is renamed into place,
    so readers only ever see complete values. ``cas`` on an existing key
    serializes through a ``<key>.lock`` file created with ``O_EXCL``.
    A lock file left behind by a process that died while holding it is
    not reclaimed: every later ``cas`` on that key raises
    ``TimeoutError`` until the file is removed by hand.

    Args:
        root: Directory holding the store. Created if missing.
        lock_timeout: Seconds to wait for a held lock before giving up.
    """

    def __init__(self, root: str | os.PathLike, lock_timeout: float = 5.0) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout

    def get(self, key: str) -> bytes | None:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        check_bytes(value)
        path = self._path(key)
        os.replace(self._write_temp(path, value), path)

    def keys(self, prefix: str = "") -> Iterable[str]:
        found = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            rel_dir = Path(dirpath).relative_to(self.root)
            for name in filenames:
                if name.startswith(".") or name.endswith(LOCK_SUFFIX):
                    continue
                key = (rel_dir / name).as_posix()
                if key.startswith(prefix):
                    found.append(key)
        return sorted(found)

    def __contains__(self, key: str) -> bool:
        return self._path(key).is_file()

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        check_bytes(value)
        path = self._path(key)
        if expected is None:
            # os.link refuses to clobber, making create-if-absent atomic
            tmp = self._write_temp(path, value)
            try:
                os.link(tmp, path)
                return True
            except FileExistsError:
                return False
            finally:
                tmp.unlink(missing_ok=True)

        lock = self._acquire(path)
        try:
            if self.get(key) != expected:
                return False
            os.replace(self._write_temp(path, value), path)
            return True
        finally:
            os.close(lock)
            path.with_name(path.name + LOCK_SUFFIX).unlink(missing_ok=True)

    def clear(self) -> None:
        for child in self.root.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()

    # -- Internal --

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        for part in parts:
            if not part or part in (".", "..") or part.startswith("."):
                raise ValueError(f"Invalid key: {key!r}")
        if parts[-1].endswith(LOCK_SUFFIX):
            raise ValueError(f"Invalid key: {key!r}")
        return self.root.joinpath(*parts)

    def _write_temp(self, path: Path, value: bytes) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            os.unlink(tmp)
            raise
        return Path(tmp)

    def _acquire(self, path: Path) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = path.with_name(path.name + LOCK_SUFFIX)
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                return os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"Could not lock {lock_path}")
                time.sleep(0.01)
