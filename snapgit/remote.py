"""Remote wire protocol and an in-process endpoint serving a repository."""

import logging
import os
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Protocol, runtime_checkable

from .errors import ObjectNotFound, RemoteUnreachable
from .repository import Repository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CasResult:
    """Outcome of a remote branch compare-and-swap.

    ``actual`` is the branch's value after the call: the new value on
    success, the conflicting value on failure.
    """

    ok: bool
    actual: str | None

    def __bool__(self) -> bool:
        return self.ok


@runtime_checkable
class RemoteEndpoint(Protocol):
    """Transport-agnostic operations a remote repository serves."""

    def list_branches(self) -> dict[str, str]: ...
    def list_missing(self, wants: Iterable[str], haves: Iterable[str]) -> list[str]: ...
    def get_object(self, object_id: str) -> bytes: ...
    def put_object(self, object_id: str, data: bytes) -> None: ...
    def cas_update_branch(
        self, name: str, expected: str | None, new_value: str
    ) -> CasResult: ...


Connector = Callable[[str], RemoteEndpoint]


class LocalEndpoint:
    """Serve a ``Repository`` to ``RemoteSync`` without a network hop.

    Uploaded objects are verified and must arrive parents first.
    Storage ``OSError``s are reported as ``RemoteUnreachable``.
    """

    def __init__(self, repo: Repository, location: str = "<memory>") -> None:
        self.repo = repo
        self.location = location

    def list_branches(self) -> dict[str, str]:
        with self._transport():
            return self.repo.refs.branches()

    def list_missing(self, wants: Iterable[str], haves: Iterable[str]) -> list[str]:
        """Ids reachable from ``wants`` but not from ``haves``, newest first.

        The walk stops at the first id on each path that is in
        ``haves``.
        """
        have_set = set(haves)
        missing: list[str] = []
        with self._transport():
            seen: set[str] = set()
            queue: deque[str] = deque(sorted(set(wants)))
            while queue:
                current = queue.popleft()
                if current in seen or current in have_set:
                    continue
                seen.add(current)
                missing.append(current)
                for p in self.repo.objects.parents(current):
                    if p not in seen and p not in have_set:
                        queue.append(p)
        return missing

    def get_object(self, object_id: str) -> bytes:
        with self._transport():
            return self.repo.objects.raw(object_id)

    def put_object(self, object_id: str, data: bytes) -> None:
        with self._transport():
            self.repo.objects.admit(data, object_id)

    def cas_update_branch(
        self, name: str, expected: str | None, new_value: str
    ) -> CasResult:
        with self._transport():
            if not self.repo.objects.has(new_value):
                raise ObjectNotFound(new_value)
            if self.repo.refs.set_branch(name, expected, new_value):
                logger.info("Remote %s: %s -> %s", name, expected, new_value)
                return CasResult(ok=True, actual=new_value)
            return CasResult(ok=False, actual=self.repo.refs.get_branch(name))

    @contextmanager
    def _transport(self) -> Iterator[None]:
        try:
            yield
        except OSError as e:
            raise RemoteUnreachable(self.location) from e

    def __repr__(self) -> str:
        return f"LocalEndpoint({self.location!r})"


def connect(location: str, *, kind: str = "directory") -> LocalEndpoint:
    """Open the repository stored at ``location`` as a remote.

    Raises:
        RemoteUnreachable: If nothing exists at ``location``.
    """
    if not os.path.isdir(location):
        raise RemoteUnreachable(location)
    from .store import repository

    try:
        repo = repository(kind, path=location)
    except OSError as e:
        raise RemoteUnreachable(location) from e
    return LocalEndpoint(repo, location)
