"""
Fixtures for tests against a live PostgreSQL server.

Connection settings come from the DB_* environment variables. When no
server answers, every test in this package is skipped.
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool

from db_locker.config import load_database_settings
from db_locker.core.lock_key import LockKey, derive_key
from db_locker.core.locker import PostgresAdvisoryLocker
from db_locker.db.client import PostgresClient


@pytest.fixture(scope="session")
def pg_client():
    settings = load_database_settings()
    url = URL.create(
        drivername="postgresql+psycopg2",
        username=settings.user,
        password=settings.password,
        host=settings.host,
        port=settings.port,
        database=settings.name,
    )
    # NullPool: closing a connection really ends the session and with it its locks
    engine = create_engine(url, poolclass=NullPool, connect_args={"connect_timeout": settings.connect_timeout})
    client = PostgresClient(engine=engine)

    try:
        with client.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError as error:
        client.dispose()
        pytest.skip(f"PostgreSQL is not reachable at {settings.host}:{settings.port}: {error}")

    yield client
    client.dispose()


@pytest.fixture
def open_connection(pg_client):
    """Factory for SQLAlchemy connections, each one its own database session."""
    connections = []

    def _open():
        conn = pg_client.connect()
        connections.append(conn)
        return conn

    yield _open

    for conn in connections:
        conn.close()


@pytest.fixture
def locker() -> PostgresAdvisoryLocker:
    return PostgresAdvisoryLocker()


@pytest.fixture
def key() -> LockKey:
    return derive_key("db_locker_tests", uuid.uuid4().hex)


@pytest.fixture
def other_key() -> LockKey:
    return derive_key("db_locker_tests", uuid.uuid4().hex)


def backend_pid(conn) -> int:
    return conn.execute(text("SELECT pg_backend_pid()")).scalar()
