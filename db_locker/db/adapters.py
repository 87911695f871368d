# db_locker/db/adapters.py

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from psycopg2 import extensions as pg_extensions
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session
from sqlalchemy.pool import PoolProxiedConnection
from sqlalchemy.sql.elements import TextClause

from db_locker.ports.connection import ConnectionAdapter

# SQLSTATE raised when lock_timeout expires (or NOWAIT fails)
LOCK_NOT_AVAILABLE_SQLSTATE = "55P03"

# Start of the trailing label comment appended by the locker
_COMMENT_MARKER = " -- "

# `:name` binds, skipping `::type` casts
_BIND_RE = re.compile(r"(?<![:\w]):(\w+)")

_ACTIVE_TRANSACTION_STATUSES = {
    pg_extensions.TRANSACTION_STATUS_ACTIVE,
    pg_extensions.TRANSACTION_STATUS_INTRANS,
    pg_extensions.TRANSACTION_STATUS_INERROR,
}


def sqlstate_of(error: BaseException) -> Optional[str]:
    """
    SQLSTATE code of a driver error.

    Looks at the error itself and, for SQLAlchemy's DBAPIError, at the
    wrapped driver error. psycopg2 exposes `pgcode`, psycopg 3 `sqlstate`.
    """
    for candidate in (error, getattr(error, "orig", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None


def is_lock_not_available(error: BaseException) -> bool:
    return sqlstate_of(error) == LOCK_NOT_AVAILABLE_SQLSTATE


def _split_comment(sql: str) -> tuple[str, str]:
    body, marker, comment = sql.partition(_COMMENT_MARKER)
    return body, marker + comment


def to_sqlalchemy_text(sql: str) -> TextClause:
    """
    Builds a TextClause, escaping colons inside the trailing comment so a label
    like `[ns::x]` is never parsed as a bind parameter.
    """
    body, comment = _split_comment(sql)
    return text(body + comment.replace(":", "\\:"))


def to_pyformat(sql: str, params: Mapping[str, Any]) -> str:
    """
    Rewrites `:name` binds as psycopg2's `%(name)s`.

    Literal `%` is doubled only when parameters are passed, since psycopg2
    leaves the query untouched otherwise.
    """
    if not params:
        return sql

    body, comment = _split_comment(sql)
    body = body.replace("%", "%%")
    body = _BIND_RE.sub(
        lambda m: f"%({m.group(1)})s" if m.group(1) in params else m.group(0),
        body,
    )
    return body + comment.replace("%", "%%")


@dataclass(frozen=True)
class SqlAlchemyConnectionAdapter:
    """Adapter over a SQLAlchemy Core `Connection`."""
    connection: Connection

    def fetch_scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.connection.execute(to_sqlalchemy_text(sql), dict(params or {})).scalar()

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> None:
        self.connection.execute(to_sqlalchemy_text(sql), dict(params or {}))

    def is_transaction_active(self) -> bool:
        return self.connection.in_transaction()

    def is_lock_unavailable(self, error: BaseException) -> bool:
        return is_lock_not_available(error)


@dataclass(frozen=True)
class SqlAlchemySessionAdapter:
    """
    Adapter over a SQLAlchemy ORM `Session`.

    A Session bound to an Engine hands its connection back to the pool on
    commit / rollback / close, so a later release could run on another
    connection. Session-level locks are therefore only accepted when the
    Session is bound to a `Connection` (`Session(bind=conn)`), which it keeps
    across transactions. Transaction-level locks work with any Session.
    """
    session: Session

    @property
    def holds_session_locks(self) -> bool:
        return isinstance(self.session.bind, Connection)

    def fetch_scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.session.execute(to_sqlalchemy_text(sql), dict(params or {})).scalar()

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> None:
        self.session.execute(to_sqlalchemy_text(sql), dict(params or {}))

    def is_transaction_active(self) -> bool:
        return self.session.in_transaction()

    def is_lock_unavailable(self, error: BaseException) -> bool:
        return is_lock_not_available(error)


@dataclass(frozen=True)
class Psycopg2ConnectionAdapter:
    """
    Adapter over a raw psycopg2 connection, e.g. `PostgresClient.raw_connection()`.
    """
    connection: Any

    def fetch_scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        params = dict(params or {})
        with self.connection.cursor() as cursor:
            cursor.execute(to_pyformat(sql, params), params or None)
            if cursor.description is None:
                return None
            row = cursor.fetchone()
        return row[0] if row else None

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> None:
        params = dict(params or {})
        with self.connection.cursor() as cursor:
            cursor.execute(to_pyformat(sql, params), params or None)

    def is_transaction_active(self) -> bool:
        return self.connection.get_transaction_status() in _ACTIVE_TRANSACTION_STATUSES

    def is_lock_unavailable(self, error: BaseException) -> bool:
        return is_lock_not_available(error)


def adapt_connection(connection: Any) -> ConnectionAdapter:
    """
    Returns the adapter matching `connection`.

    Accepts a SQLAlchemy Connection or Session, a psycopg2 connection (bare or
    pool-proxied), or any object already implementing ConnectionAdapter.
    """
    if isinstance(connection, Connection):
        return SqlAlchemyConnectionAdapter(connection)
    if isinstance(connection, Session):
        return SqlAlchemySessionAdapter(connection)
    if isinstance(connection, (pg_extensions.connection, PoolProxiedConnection)):
        return Psycopg2ConnectionAdapter(connection)
    if isinstance(connection, ConnectionAdapter):
        return connection
    raise TypeError(f"Unsupported connection type: {type(connection).__name__}")
