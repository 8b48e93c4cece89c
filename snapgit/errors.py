"""snapgit error types."""


class SnapgitError(Exception):
    """Base class for every snapgit failure."""


class ObjectNotFound(SnapgitError):
    """Raised when a referenced commit id is absent from the object store."""

    def __init__(self, object_id: str) -> None:
        self.object_id = object_id
        super().__init__(f"Object not found: {object_id}")


class CorruptObject(SnapgitError):
    """Raised when stored content no longer hashes to its id."""

    def __init__(self, object_id: str, actual: str) -> None:
        self.object_id = object_id
        self.actual = actual
        super().__init__(f"Object {object_id} is corrupt (content hashes to {actual})")


class ConcurrencyError(SnapgitError):
    """Raised when a compare-and-swap on a branch pointer loses a race.

    Another actor moved the branch between when it was read and when
    the update was attempted. The caller should refresh and retry.

    Attributes:
        branch: The branch whose update was refused.
        expected: The value the caller believed the branch held.
        actual: The value the branch actually held.
    """

    def __init__(self, branch: str, expected: str | None, actual: str | None) -> None:
        self.branch = branch
        self.expected = expected
        self.actual = actual
        super().__init__(self._message())

    def _message(self) -> str:
        return (
            f"Branch '{self.branch}' moved from {self.expected} to "
            f"{self.actual}. Refresh and retry."
        )


class ConcurrentBranchUpdate(ConcurrencyError):
    """Raised when a local commit or merge cannot advance its branch."""


class NonFastForwardRejected(ConcurrencyError):
    """Raised when a push would not fast-forward the remote branch."""

    def _message(self) -> str:
        return (
            f"Push to '{self.branch}' rejected: remote is at {self.actual}, "
            "which the pushed history does not contain. Fetch and reconcile first."
        )


class BranchAlreadyExists(SnapgitError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Branch '{name}' already exists")


class BranchNotFound(SnapgitError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Branch '{name}' not found")


class CorruptTransfer(SnapgitError):
    """Raised when a transferred object fails verification.

    The whole transfer is abandoned; nothing from it is installed.
    """

    def __init__(self, object_id: str, reason: str) -> None:
        self.object_id = object_id
        self.reason = reason
        super().__init__(f"Transfer of {object_id} failed verification: {reason}")


class RemoteUnreachable(SnapgitError):
    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__(f"Remote unreachable: {location}")


class RemoteNotFound(SnapgitError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Remote '{name}' is not registered")


class RemoteAlreadyExists(SnapgitError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Remote '{name}' already exists")


class MergeInProgress(SnapgitError):
    """Raised when an operation is refused because a merge awaits resolution."""


class NoMergeInProgress(SnapgitError):
    """Raised when finalizing or aborting with no pending merge."""


class NoMergeBase(SnapgitError):
    """Raised when two commits share no history."""

    def __init__(self, commit_a: str, commit_b: str) -> None:
        self.commit_a = commit_a
        self.commit_b = commit_b
        super().__init__(f"No common ancestor between {commit_a} and {commit_b}")


class UncommittedChanges(SnapgitError):
    """Raised when an operation would overwrite uncommitted work."""


class InvalidSnapshot(SnapgitError):
    """Raised when a snapshot blob is not an archive the archiver can read."""
