# db_locker/db/client.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ContextManager, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, URL, Connection

from db_locker.config import DatabaseSettings
from db_locker.core.lock_key import INT32_MAX


def _oid_to_int32(value: int) -> int:
    # pg_locks reports the two int4 keys as unsigned oids
    return value - 0x1_0000_0000 if value > INT32_MAX else value


@dataclass(frozen=True)
class AdvisoryLockRow:
    """One advisory lock entry from pg_locks."""
    pid: int
    class_id: int
    object_id: int
    mode: str
    granted: bool


@dataclass(frozen=True)
class PostgresClient:
    """
    Small wrapper around a SQLAlchemy Postgres engine.

    Purpose:
    - Create and configure the engine
    - Hand out connections on which locks are taken
    - Expose raw psycopg2 connections for the DB-API adapter
    - Inspect advisory locks currently held on the server
    """

    engine: Engine

    @classmethod
    def from_params(
        cls,
        user: str,
        password: str,
        host: str,
        port: int,
        db: str,
        connect_timeout: int = 5,
    ) -> "PostgresClient":
        """
        Build a PostgresClient from connection parameters.
        """
        # Build database URL (handles special characters safely)
        url = URL.create(
            drivername="postgresql+psycopg2",
            username=user,
            password=password,
            host=host,
            port=port,
            database=db,
        )

        engine = create_engine(
            url,
            pool_pre_ping=True,   # reconnect if connection is stale
            connect_args={"connect_timeout": connect_timeout},
        )
        return cls(engine=engine)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "PostgresClient":
        return cls.from_params(
            user=settings.user,
            password=settings.password,
            host=settings.host,
            port=settings.port,
            db=settings.name,
            connect_timeout=settings.connect_timeout,
        )

    # ------------------------------------------------------------------

    def connect(self) -> ContextManager[Connection]:
        """
        Connection context manager.

        Session-level locks live exactly as long as this connection is checked
        out, so keep it open for the whole critical section.
        """
        return self.engine.connect()

    def begin(self) -> ContextManager[Connection]:
        """
        Transaction context manager.
        """
        return self.engine.begin()

    def raw_connection(self) -> Any:
        """
        Return a psycopg2 connection (used by Psycopg2ConnectionAdapter).
        """
        return self.engine.raw_connection()

    def advisory_locks(self, pid: Optional[int] = None) -> List[AdvisoryLockRow]:
        """
        Return two-key advisory locks of the current database, optionally
        filtered by backend pid.
        """
        sql = """
            SELECT pid,
                   CAST(classid AS bigint) AS class_id,
                   CAST(objid AS bigint)   AS object_id,
                   mode,
                   granted
            FROM pg_locks
            WHERE locktype = 'advisory'
              AND objsubid = 2
              AND database = (SELECT oid FROM pg_database WHERE datname = current_database())
        """
        params: dict = {}
        if pid is not None:
            sql += " AND pid = :pid"
            params["pid"] = pid
        sql += " ORDER BY pid, classid, objid"

        with self.engine.connect() as conn:
            rows = conn.execute(text(sql), params).fetchall()

        return [
            AdvisoryLockRow(
                pid=row.pid,
                class_id=_oid_to_int32(row.class_id),
                object_id=_oid_to_int32(row.object_id),
                mode=row.mode,
                granted=row.granted,
            )
            for row in rows
        ]

    def dispose(self) -> None:
        self.engine.dispose()
