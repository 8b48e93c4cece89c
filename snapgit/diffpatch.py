"""Path-level diff and three-way patch application.

``diff`` records, per path, what a file was and what it became.
``TextPatcher.apply`` replays those changes onto another tree, falling
back to a line-wise three-way merge (``merge3``) where the tree has
diverged from the changeset's starting point.
"""

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Protocol, runtime_checkable

from merge3 import Merge3

OURS_MARKER = b"<<<<<<< ours\n"
SEP_MARKER = b"=======\n"
THEIRS_MARKER = b">>>>>>> theirs\n"


@dataclass(frozen=True)
class Change:
    """One path's transition. ``None`` means absent on that side."""

    path: str
    old: bytes | None
    new: bytes | None


@dataclass(frozen=True)
class Changeset:
    changes: tuple[Change, ...] = ()

    def __iter__(self) -> Iterator[Change]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(c.path for c in self.changes)


@dataclass(frozen=True)
class PatchResult:
    """Patched files plus the paths that could not be applied cleanly."""

    files: dict[str, bytes]
    conflicts: tuple[str, ...] = field(default=())

    @property
    def clean(self) -> bool:
        return not self.conflicts


@runtime_checkable
class Patcher(Protocol):
    def apply(self, changeset: Changeset, files: Mapping[str, bytes]) -> PatchResult: ...


def diff(base: Mapping[str, bytes], other: Mapping[str, bytes]) -> Changeset:
    """Changes that turn ``base`` into ``other``, sorted by path."""
    changes = []
    for path in sorted(set(base) | set(other)):
        old = base.get(path)
        new = other.get(path)
        if old != new:
            changes.append(Change(path=path, old=old, new=new))
    return Changeset(tuple(changes))


def merge_text(base: bytes, ours: bytes, theirs: bytes) -> tuple[bytes, bool] | None:
    """Three-way merge of text content.

    Returns ``(merged, clean)``, with conflicting regions wrapped in
    ``<<<<<<< ours`` / ``=======`` / ``>>>>>>> theirs`` markers, or None
    for binary content.
    """
    if b"\0" in base or b"\0" in ours or b"\0" in theirs:
        return None
    merger = Merge3(
        base.splitlines(keepends=True),
        ours.splitlines(keepends=True),
        theirs.splitlines(keepends=True),
    )
    out: list[bytes] = []
    clean = True
    for group in merger.merge_groups():
        kind = group[0]
        if kind == "conflict":
            clean = False
            _, _, our_lines, their_lines = group
            out.append(OURS_MARKER)
            out.extend(_terminated(our_lines))
            out.append(SEP_MARKER)
            out.extend(_terminated(their_lines))
            out.append(THEIRS_MARKER)
        else:
            out.extend(group[1])
    return b"".join(out), clean


def _terminated(lines: list[bytes]) -> list[bytes]:
    if lines and not lines[-1].endswith(b"\n"):
        return lines[:-1] + [lines[-1] + b"\n"]
    return list(lines)


class TextPatcher:
    """Apply a changeset to a tree, merging text where both sides changed."""

    def apply(self, changeset: Changeset, files: Mapping[str, bytes]) -> PatchResult:
        result = dict(files)
        conflicts: list[str] = []
        for change in changeset:
            current = result.get(change.path)
            if current == change.old:
                if change.new is None:
                    result.pop(change.path, None)
                else:
                    result[change.path] = change.new
                continue
            if current == change.new:
                continue
            if current is None or change.new is None:
                # modify/delete: keep the tree's side
                conflicts.append(change.path)
                continue
            merged = merge_text(change.old or b"", current, change.new)
            if merged is None:
                conflicts.append(change.path)
                continue
            content, clean = merged
            result[change.path] = content
            if not clean:
                conflicts.append(change.path)
        return PatchResult(files=result, conflicts=tuple(conflicts))
