# db_locker/core/handles.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from db_locker.core.enums import AccessMode
from db_locker.core.lock_key import LockKey

if TYPE_CHECKING:
    from db_locker.core.locker import PostgresAdvisoryLocker
    from db_locker.ports.connection import ConnectionAdapter


class SessionLockHandle:
    """
    Outcome of a session-level acquisition.

    `was_acquired` never changes after construction. `release()` goes to the
    database at most once per successful release; it is a no-op returning
    False when the lock was never acquired or has already been released.

    The handle can be used as a context manager. Leaving the block releases
    the lock; if the block is raising, a failing release never replaces the
    block's exception.
    """

    def __init__(
            self,
            connection: ConnectionAdapter,
            locker: PostgresAdvisoryLocker,
            lock_key: LockKey,
            access_mode: AccessMode,
            was_acquired: bool,
    ) -> None:
        self._connection = connection
        self._locker = locker
        self._lock_key = lock_key
        self._access_mode = access_mode
        self._was_acquired = was_acquired
        self._is_released = False

    @property
    def lock_key(self) -> LockKey:
        return self._lock_key

    @property
    def access_mode(self) -> AccessMode:
        return self._access_mode

    @property
    def was_acquired(self) -> bool:
        return self._was_acquired

    @property
    def is_released(self) -> bool:
        return self._is_released

    def release(self) -> bool:
        if not self._was_acquired or self._is_released:
            return False

        was_released = self._locker.release_session_lock(
            self._connection,
            self._lock_key,
            self._access_mode,
        )
        if was_released:
            self._is_released = True
        return was_released

    def __enter__(self) -> "SessionLockHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.release()
        else:
            try:
                self.release()
            except Exception:
                # the block's exception wins
                pass
        return False

    def __repr__(self) -> str:
        return (
            f"SessionLockHandle(lock_key={self._lock_key!r}, access_mode={self._access_mode.value}, "
            f"was_acquired={self._was_acquired}, is_released={self._is_released})"
        )


@dataclass(frozen=True)
class TransactionLockHandle:
    """
    Outcome of a transaction-level acquisition.

    There is nothing to release: the server drops the lock when the
    surrounding transaction commits, rolls back or loses its connection.
    """
    lock_key: LockKey
    access_mode: AccessMode
    was_acquired: bool
