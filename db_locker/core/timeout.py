# db_locker/core/timeout.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from db_locker.exceptions import LockValidationError


@dataclass(frozen=True)
class TimeoutDuration:
    """
    How long an acquisition may wait for a busy lock, in milliseconds.

    Zero means "try once, do not wait". There is no value for
    "wait forever": every blocking attempt is bounded.
    """
    milliseconds: int

    def __post_init__(self) -> None:
        if isinstance(self.milliseconds, bool) or not isinstance(self.milliseconds, int):
            raise LockValidationError(
                f"Timeout duration must be an integer number of milliseconds, got={self.milliseconds!r}"
            )
        if self.milliseconds < 0:
            raise LockValidationError(
                f"Timeout duration must not be negative, got {self.milliseconds} milliseconds"
            )

    @classmethod
    def zero(cls) -> "TimeoutDuration":
        return cls(0)

    @classmethod
    def of_milliseconds(cls, milliseconds: int) -> "TimeoutDuration":
        return cls(milliseconds)

    @classmethod
    def of_seconds(cls, seconds: int) -> "TimeoutDuration":
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            raise LockValidationError(f"Timeout seconds must be an integer, got={seconds!r}")
        if seconds < 0:
            raise LockValidationError(f"Timeout duration must not be negative, got {seconds} seconds")
        return cls(seconds * 1000)

    @classmethod
    def from_timedelta(cls, delta: timedelta) -> "TimeoutDuration":
        """Converts a timedelta, truncating sub-millisecond precision."""
        return cls(delta // timedelta(milliseconds=1))

    @property
    def is_zero(self) -> bool:
        return self.milliseconds == 0

    def to_milliseconds(self) -> int:
        return self.milliseconds

    def to_pg_interval(self) -> str:
        """Value for PostgreSQL's lock_timeout setting, e.g. '1500ms'."""
        return f"{self.milliseconds}ms"
