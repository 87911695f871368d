# db_locker/ports/connection.py

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class ConnectionAdapter(Protocol):
    """
    What the locker needs from a database connection.

    Statements use `:name` placeholders. Implementations must let the driver's
    native errors propagate unwrapped; the locker decides how to wrap them.

    An adapter that cannot keep one server session between transactions
    exposes `holds_session_locks = False`; the locker then refuses
    session-level locks on it. Adapters without the attribute are assumed to
    hold them.
    """

    def fetch_scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """First column of the first row (None when no row is returned)."""
        ...

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> None: ...

    def is_transaction_active(self) -> bool: ...

    def is_lock_unavailable(self, error: BaseException) -> bool:
        """True only when `error` means "lock could not be obtained in time"."""
        ...
