# db_locker/exceptions.py

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from db_locker.core.lock_key import LockKey


class LockError(Exception):
    """Base class for every error raised by db_locker."""

    def __init__(self, message: str, lock_key: Optional["LockKey"] = None) -> None:
        super().__init__(message)
        self.lock_key = lock_key


class LockValidationError(LockError, ValueError):
    """Malformed input: out-of-range id, negative timeout, empty namespace."""


class LockPreconditionError(LockError, RuntimeError):
    """
    The caller asked for something that can never succeed in the current state,
    e.g. a transaction-level lock on a connection without an open transaction.
    Raised before any statement is sent to the database.
    """


class LockAcquireError(LockError):
    """
    A genuine database failure while acquiring a lock.

    Never raised for ordinary contention; a busy lock is reported as
    `was_acquired=False`. The native driver error is kept as `__cause__`.
    """

    @classmethod
    def from_error(cls, lock_key: "LockKey", error: BaseException) -> "LockAcquireError":
        return cls(
            f"Failed to acquire lock for key `{lock_key.label}`: {error}",
            lock_key=lock_key,
        )


class LockReleaseError(LockError):
    """A genuine database failure while releasing a lock."""

    @classmethod
    def from_error(cls, lock_key: Optional["LockKey"], error: BaseException) -> "LockReleaseError":
        if lock_key is None:
            return cls(f"Failed to release all session locks: {error}")
        return cls(
            f"Failed to release lock for key `{lock_key.label}`: {error}",
            lock_key=lock_key,
        )
