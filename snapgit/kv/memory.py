"""In-memory KV store."""

import threading
from typing import Iterable

from .base import KVStore, check_bytes


class Memory(KVStore):
    """A memory-backed KV store."""

    def __init__(self) -> None:
        self.memory: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        return self.memory.get(key)

    def set(self, key: str, value: bytes) -> None:
        check_bytes(value)
        with self._lock:
            self.memory[key] = value

    def keys(self, prefix: str = "") -> Iterable[str]:
        return sorted(k for k in list(self.memory) if k.startswith(prefix))

    def __contains__(self, key: str) -> bool:
        return key in self.memory

    def remove(self, key: str) -> None:
        with self._lock:
            self.memory.pop(key, None)

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        check_bytes(value)
        with self._lock:
            current = self.memory.get(key)
            if current == expected:
                self.memory[key] = value
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self.memory.clear()
