"""KV store backends."""

from .base import KVStore
from .directory import Directory
from .disk import Disk
from .memory import Memory

__all__ = ["Directory", "Disk", "KVStore", "Memory"]
