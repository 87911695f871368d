# db_locker/lock.py

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar, Union

from db_locker.core.enums import AccessMode
from db_locker.core.handles import SessionLockHandle, TransactionLockHandle
from db_locker.core.lock_key import LockKey, derive_key
from db_locker.core.locker import PostgresAdvisoryLocker
from db_locker.core.timeout import TimeoutDuration
from db_locker.db.adapters import adapt_connection
from db_locker.ports.connection import ConnectionAdapter

T = TypeVar("T")


class PostgresLock:
    """
    One lock key bound to one connection.

    Example:
        with client.connect() as conn:
            lock = create_lock(conn, "payment_processing", "123")
            with conn.begin():
                if lock.acquire_transaction_level(TimeoutDuration.of_seconds(5)).was_acquired:
                    process_payment(conn, 123)
    """

    def __init__(
            self,
            connection: ConnectionAdapter,
            lock_key: LockKey,
            locker: Optional[PostgresAdvisoryLocker] = None,
    ) -> None:
        self._connection = connection
        self._lock_key = lock_key
        self._locker = locker or PostgresAdvisoryLocker()

    @property
    def lock_key(self) -> LockKey:
        return self._lock_key

    def acquire_transaction_level(
            self,
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> TransactionLockHandle:
        return self._locker.acquire_transaction_lock(self._connection, self._lock_key, timeout, access_mode)

    def acquire_session_level(
            self,
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> SessionLockHandle:
        return self._locker.acquire_session_lock(self._connection, self._lock_key, timeout, access_mode)

    def within_session_lock(
            self,
            operation: Callable[[SessionLockHandle], T],
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> T:
        return self._locker.within_session_lock(
            self._connection,
            self._lock_key,
            operation,
            timeout,
            access_mode,
        )

    def release(self, access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE) -> bool:
        return self._locker.release_session_lock(self._connection, self._lock_key, access_mode)

    def release_all(self) -> None:
        """Releases every session-level lock of the connection, not only this key."""
        self._locker.release_all_session_locks(self._connection)

    def is_in_transaction(self) -> bool:
        return self._connection.is_transaction_active()

    def __repr__(self) -> str:
        return f"PostgresLock(lock_key={self._lock_key!r})"


def create_lock(
        connection: Any,
        namespace: str,
        value: str = "",
        label: Optional[str] = None,
) -> PostgresLock:
    """
    Builds a PostgresLock for `(namespace, value)` on any supported connection
    (SQLAlchemy Connection/Session, psycopg2 connection or a ConnectionAdapter).
    """
    return PostgresLock(adapt_connection(connection), derive_key(namespace, value, label))
