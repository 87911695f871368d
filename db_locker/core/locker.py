# db_locker/core/locker.py

from __future__ import annotations

from typing import Callable, TypeVar, Union

from loguru import logger

from db_locker.core.enums import AccessMode, LockScope
from db_locker.core.handles import SessionLockHandle, TransactionLockHandle
from db_locker.core.lock_key import LockKey
from db_locker.core.timeout import TimeoutDuration
from db_locker.exceptions import LockAcquireError, LockPreconditionError, LockReleaseError
from db_locker.ports.connection import ConnectionAdapter
from db_locker.utils.identifiers import sanitize_ident

T = TypeVar("T")

# Savepoint wrapping a blocking attempt, so that a lock_timeout expiry only
# aborts the attempt and not the caller's transaction.
SAVEPOINT_NAME = sanitize_ident("db_locker_acquire")

# (scope, access mode, wait) -> advisory lock function
_ACQUIRE_FUNCTIONS = {
    (LockScope.SESSION, AccessMode.EXCLUSIVE, False): "pg_try_advisory_lock",
    (LockScope.SESSION, AccessMode.EXCLUSIVE, True): "pg_advisory_lock",
    (LockScope.SESSION, AccessMode.SHARE, False): "pg_try_advisory_lock_shared",
    (LockScope.SESSION, AccessMode.SHARE, True): "pg_advisory_lock_shared",
    (LockScope.TRANSACTION, AccessMode.EXCLUSIVE, False): "pg_try_advisory_xact_lock",
    (LockScope.TRANSACTION, AccessMode.EXCLUSIVE, True): "pg_advisory_xact_lock",
    (LockScope.TRANSACTION, AccessMode.SHARE, False): "pg_try_advisory_xact_lock_shared",
    (LockScope.TRANSACTION, AccessMode.SHARE, True): "pg_advisory_xact_lock_shared",
}

_RELEASE_FUNCTIONS = {
    AccessMode.EXCLUSIVE: "pg_advisory_unlock",
    AccessMode.SHARE: "pg_advisory_unlock_shared",
}


class PostgresAdvisoryLocker:
    """
    Drives PostgreSQL advisory locks over a ConnectionAdapter.

    Contention is a normal outcome and is returned as False (or as a handle
    with `was_acquired=False`). Only genuine database failures raise, wrapped
    in LockAcquireError / LockReleaseError with the key label in the message.

    Server-side semantics are passed through untouched: session locks are
    reentrant (N acquisitions need N releases) and a lock can only be
    released with the access mode it was taken with.

    The locker keeps no state; one instance can serve any number of
    connections. A single connection must not be shared between threads.
    """

    # ------------------------------------------------------------------
    # Acquisition

    def acquire(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            *,
            scope: Union[LockScope, str],
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> bool:
        """
        Acquires `key` and reports whether the lock is now held.

        A zero timeout issues one non-blocking attempt. A positive timeout
        issues a blocking attempt bounded by the server's lock_timeout.

        Raises:
            LockPreconditionError: transaction scope requested with no open transaction, or
                session scope on an adapter that does not hold session locks
            LockAcquireError: any database failure other than "lock not available"
        """
        scope = LockScope(scope)
        access_mode = AccessMode(access_mode)
        if not isinstance(timeout, TimeoutDuration):
            raise TypeError(f"timeout must be a TimeoutDuration, got={timeout!r}")

        if scope is LockScope.TRANSACTION and not connection.is_transaction_active():
            raise LockPreconditionError(
                f"Transaction-level advisory lock `{key.label}` cannot be acquired outside of transaction",
                lock_key=key,
            )
        if scope is LockScope.SESSION and not getattr(connection, "holds_session_locks", True):
            raise LockPreconditionError(
                f"Session-level advisory lock `{key.label}` needs a connection that outlives transactions; "
                f"bind the Session to a Connection",
                lock_key=key,
            )

        try:
            if timeout.is_zero:
                acquired = self._try_acquire(connection, key, scope, access_mode)
            elif scope is LockScope.TRANSACTION:
                acquired = self._acquire_within_transaction(connection, key, access_mode, timeout)
            else:
                acquired = self._acquire_within_session(connection, key, access_mode, timeout)
        except Exception as error:
            logger.debug(f"Advisory lock {key.label} failed: {error}")
            raise LockAcquireError.from_error(key, error) from error

        logger.debug(
            f"Advisory lock {key.label} {'acquired' if acquired else 'not acquired'} "
            f"(scope={scope.value}, mode={access_mode.value}, timeout={timeout.milliseconds}ms)"
        )
        return acquired

    def acquire_session_lock(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> SessionLockHandle:
        """
        Acquires a session-level lock.

        The lock outlives transactions; release it through the handle (or
        `release_session_lock`) or it stays held until the connection closes.
        """
        access_mode = AccessMode(access_mode)
        acquired = self.acquire(
            connection,
            key,
            scope=LockScope.SESSION,
            timeout=timeout,
            access_mode=access_mode,
        )
        return SessionLockHandle(
            connection,
            self,
            key,
            access_mode,
            was_acquired=acquired,
        )

    def acquire_transaction_lock(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> TransactionLockHandle:
        """Acquires a lock that the server releases when the current transaction ends."""
        access_mode = AccessMode(access_mode)
        acquired = self.acquire(
            connection,
            key,
            scope=LockScope.TRANSACTION,
            timeout=timeout,
            access_mode=access_mode,
        )
        return TransactionLockHandle(
            lock_key=key,
            access_mode=access_mode,
            was_acquired=acquired,
        )

    def within_session_lock(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            operation: Callable[[SessionLockHandle], T],
            timeout: TimeoutDuration,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> T:
        """
        Runs `operation(handle)` under a session-level lock and releases it.

        `operation` is called exactly once, also when the lock was not
        acquired; checking `handle.was_acquired` is up to the caller.

        Outcomes:
            operation ok,     release ok     -> operation's return value
            operation ok,     release raises -> LockReleaseError
            operation raises, release any    -> operation's exception, release error dropped
        """
        handle = self.acquire_session_lock(connection, key, timeout, access_mode)
        with handle:
            return operation(handle)

    # ------------------------------------------------------------------
    # Release

    def release_session_lock(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            access_mode: Union[AccessMode, str] = AccessMode.EXCLUSIVE,
    ) -> bool:
        """
        Releases one level of a session-level lock.

        Returns False when this session does not hold `key` in `access_mode`,
        including locks held at transaction level, which cannot be released
        early.

        Raises:
            LockReleaseError: on database failure
        """
        access_mode = AccessMode(access_mode)
        sql = self._lock_sql(_RELEASE_FUNCTIONS[access_mode], key)

        try:
            released = bool(connection.fetch_scalar(sql, key.as_params()))
        except Exception as error:
            raise LockReleaseError.from_error(key, error) from error

        logger.debug(f"Advisory lock {key.label} {'released' if released else 'was not held'} (mode={access_mode.value})")
        return released

    def release_all_session_locks(self, connection: ConnectionAdapter) -> None:
        """
        Drops every session-level lock held by the connection, whatever the
        reentrancy count. Transaction-level locks are left alone.
        """
        try:
            connection.fetch_scalar("SELECT pg_advisory_unlock_all()")
        except Exception as error:
            raise LockReleaseError.from_error(None, error) from error

        logger.debug("Released all session-level advisory locks")

    # ------------------------------------------------------------------
    # Internals

    @staticmethod
    def _with_label(sql: str, key: LockKey) -> str:
        # The label ends the statement as a comment; it has no control characters,
        # so it cannot leave the comment.
        return f"{sql} -- {key.label}" if key.label else sql

    def _lock_sql(self, function: str, key: LockKey) -> str:
        return self._with_label(f"SELECT {function}(:class_id, :object_id)", key)

    def _try_acquire(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            scope: LockScope,
            access_mode: AccessMode,
    ) -> bool:
        sql = self._lock_sql(_ACQUIRE_FUNCTIONS[(scope, access_mode, False)], key)
        return bool(connection.fetch_scalar(sql, key.as_params()))

    def _acquire_within_transaction(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            access_mode: AccessMode,
            timeout: TimeoutDuration,
    ) -> bool:
        # SET LOCAL: the bound stays in effect until the transaction ends
        self._set_lock_timeout(connection, key, timeout.to_pg_interval(), is_local=True)

        sql = self._lock_sql(_ACQUIRE_FUNCTIONS[(LockScope.TRANSACTION, access_mode, True)], key)
        return self._attempt_in_savepoint(connection, key, sql)

    def _acquire_within_session(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            access_mode: AccessMode,
            timeout: TimeoutDuration,
    ) -> bool:
        sql = self._lock_sql(_ACQUIRE_FUNCTIONS[(LockScope.SESSION, access_mode, True)], key)

        original = connection.fetch_scalar(self._with_label("SHOW lock_timeout", key))
        self._set_lock_timeout(connection, key, timeout.to_pg_interval(), is_local=False)

        try:
            # DB-API drivers open transactions implicitly; a failed statement
            # would poison that transaction and the restore below with it.
            if connection.is_transaction_active():
                acquired = self._attempt_in_savepoint(connection, key, sql)
            else:
                acquired = self._attempt(connection, key, sql)
        except BaseException:
            try:
                self._set_lock_timeout(connection, key, str(original), is_local=False)
            except Exception as restore_error:
                logger.warning(
                    f"Failed to restore lock_timeout={original!r} after failed lock attempt "
                    f"on {key.label}: {restore_error}"
                )
            raise

        try:
            self._set_lock_timeout(connection, key, str(original), is_local=False)
        except Exception:
            # the caller gets an error, not a handle; nobody else can release it
            if acquired:
                self._release_after_failure(connection, key, access_mode)
            raise
        return acquired

    def _release_after_failure(self, connection: ConnectionAdapter, key: LockKey, access_mode: AccessMode) -> None:
        try:
            self.release_session_lock(connection, key, access_mode)
        except LockReleaseError as release_error:
            logger.warning(f"Lock {key.label} may still be held by this session: {release_error}")

    def _attempt(self, connection: ConnectionAdapter, key: LockKey, sql: str) -> bool:
        try:
            connection.fetch_scalar(sql, key.as_params())
        except Exception as error:
            if connection.is_lock_unavailable(error):
                return False
            raise
        return True

    def _attempt_in_savepoint(self, connection: ConnectionAdapter, key: LockKey, sql: str) -> bool:
        connection.execute(self._with_label(f"SAVEPOINT {SAVEPOINT_NAME}", key))
        try:
            connection.fetch_scalar(sql, key.as_params())
        except Exception as error:
            if not connection.is_lock_unavailable(error):
                raise
            connection.execute(self._with_label(f"ROLLBACK TO SAVEPOINT {SAVEPOINT_NAME}", key))
            return False

        connection.execute(self._with_label(f"RELEASE SAVEPOINT {SAVEPOINT_NAME}", key))
        return True

    def _set_lock_timeout(
            self,
            connection: ConnectionAdapter,
            key: LockKey,
            value: str,
            *,
            is_local: bool,
    ) -> None:
        sql = self._with_label(
            f"SELECT set_config('lock_timeout', :lock_timeout, {'true' if is_local else 'false'})",
            key,
        )
        connection.fetch_scalar(sql, {"lock_timeout": value})
