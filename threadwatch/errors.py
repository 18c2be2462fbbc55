"""Error taxonomy raised at the storage boundary."""

from __future__ import annotations


class ThreadWatchError(Exception):
    """Base class for all threadwatch errors."""


class ConstraintViolation(ThreadWatchError):
    """A unique or foreign-key constraint rejected a write."""


class ConflictError(ConstraintViolation):
    """The natural key is already owned by a different row."""


class NotFoundError(ThreadWatchError):
    """A referenced parent row does not exist."""


class AccountNotValidError(ThreadWatchError):
    """The account exists but is expired or soft-deleted."""


class SchemaDriftError(ThreadWatchError):
    """A recorded migration checksum no longer matches its revision script.

    Fatal: the process must not continue against an unexpected schema.
    """

    def __init__(self, version: int, recorded: str | None, expected: str | None):
        self.version = version
        self.recorded = recorded
        self.expected = expected
        super().__init__(
            f"Migration {version} checksum mismatch: recorded {recorded!r}, expected {expected!r}"
        )
