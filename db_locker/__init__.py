# db_locker/__init__.py

from db_locker.core.enums import AccessMode, LockScope
from db_locker.core.handles import SessionLockHandle, TransactionLockHandle
from db_locker.core.lock_key import LockKey, derive_key, direct_key
from db_locker.core.locker import PostgresAdvisoryLocker
from db_locker.core.timeout import TimeoutDuration
from db_locker.db.adapters import (
    Psycopg2ConnectionAdapter,
    SqlAlchemyConnectionAdapter,
    SqlAlchemySessionAdapter,
    adapt_connection,
)
from db_locker.exceptions import (
    LockAcquireError,
    LockError,
    LockPreconditionError,
    LockReleaseError,
    LockValidationError,
)
from db_locker.lock import PostgresLock, create_lock
from db_locker.ports.connection import ConnectionAdapter

__all__ = [
    "AccessMode",
    "ConnectionAdapter",
    "LockAcquireError",
    "LockError",
    "LockKey",
    "LockPreconditionError",
    "LockReleaseError",
    "LockScope",
    "LockValidationError",
    "PostgresAdvisoryLocker",
    "PostgresLock",
    "Psycopg2ConnectionAdapter",
    "SessionLockHandle",
    "SqlAlchemyConnectionAdapter",
    "SqlAlchemySessionAdapter",
    "TimeoutDuration",
    "TransactionLockHandle",
    "adapt_connection",
    "create_lock",
    "derive_key",
    "direct_key",
]
