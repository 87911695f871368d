"""Tests for the db-locker command line."""

from __future__ import annotations

from contextlib import contextmanager

import pytest
from click.testing import CliRunner
from loguru import logger

import main
from db_locker.core.lock_key import derive_key
from db_locker.db.client import AdvisoryLockRow
from tests.unit.conftest import ConnectionLost, FakeConnectionAdapter


class FakeCliConnection(FakeConnectionAdapter):
    @contextmanager
    def begin(self):
        self.in_transaction = True
        try:
            yield self
        finally:
            self.in_transaction = False


class FakeClient:
    def __init__(self, connection: FakeCliConnection, rows=()) -> None:
        self.connection = connection
        self.rows = list(rows)

    @contextmanager
    def connect(self):
        yield self.connection

    def advisory_locks(self, pid=None):
        return [row for row in self.rows if pid is None or row.pid == pid]


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.delenv("LOCK_TIMEOUT_MS", raising=False)
    yield CliRunner()
    logger.remove()


@pytest.fixture
def connection(monkeypatch) -> FakeCliConnection:
    connection = FakeCliConnection()
    monkeypatch.setattr(main, "build_pg_client", lambda: FakeClient(connection))
    return connection


def test_key_prints_ids(runner) -> None:
    key = derive_key("user", "4")

    result = runner.invoke(main.cli, ["key", "user", "4"])

    assert result.exit_code == 0
    assert f"class_id : {key.class_id}" in result.output
    assert f"object_id: {key.object_id}" in result.output
    assert "label    : [user:4]" in result.output


def test_key_rejects_empty_namespace(runner) -> None:
    result = runner.invoke(main.cli, ["key", ""])

    assert result.exit_code == 2
    assert "namespace" in result.output


def test_acquire_session_lock(runner, connection) -> None:
    result = runner.invoke(main.cli, ["acquire", "user", "4"])

    assert result.exit_code == 0
    assert connection.commands == ["pg_try_advisory_lock", "pg_advisory_unlock"]


def test_acquire_busy_lock_exits_3(runner, connection) -> None:
    connection.responses["pg_try_advisory_lock"] = False

    result = runner.invoke(main.cli, ["acquire", "user", "4"])

    assert result.exit_code == main.EXIT_NOT_ACQUIRED
    assert "pg_advisory_unlock" not in connection.commands


def test_acquire_shared_with_timeout(runner, connection) -> None:
    result = runner.invoke(main.cli, ["acquire", "user", "4", "--shared", "--timeout-ms", "100"])

    assert result.exit_code == 0
    assert "pg_advisory_lock_shared" in connection.commands
    assert connection.commands[-1] == "pg_advisory_unlock_shared"


def test_acquire_timeout_default_from_env(runner, connection, monkeypatch) -> None:
    monkeypatch.setenv("LOCK_TIMEOUT_MS", "250")

    result = runner.invoke(main.cli, ["acquire", "user", "4"])

    assert result.exit_code == 0
    assert {"lock_timeout": "250ms"} in [params for _, params in connection.statements]


def test_acquire_transaction_scope(runner, connection) -> None:
    result = runner.invoke(main.cli, ["acquire", "user", "4", "--scope", "transaction"])

    assert result.exit_code == 0
    assert connection.commands == ["pg_try_advisory_xact_lock"]


def test_acquire_database_error_exits_1(runner, connection) -> None:
    connection.responses["pg_try_advisory_lock"] = ConnectionLost("connection refused")

    result = runner.invoke(main.cli, ["acquire", "user", "4"])

    assert result.exit_code == 1


def test_acquire_rejects_negative_timeout(runner, connection) -> None:
    result = runner.invoke(main.cli, ["acquire", "user", "4", "--timeout-ms", "-5"])

    assert result.exit_code == 2
    assert connection.statements == []


def test_locks_lists_rows(runner, monkeypatch) -> None:
    rows = [AdvisoryLockRow(pid=4242, class_id=-7, object_id=9, mode="ExclusiveLock", granted=True)]
    monkeypatch.setattr(main, "build_pg_client", lambda: FakeClient(FakeCliConnection(), rows))

    result = runner.invoke(main.cli, ["locks"])

    assert result.exit_code == 0
    assert "4242" in result.output
    assert "ExclusiveLock" in result.output


def test_locks_empty(runner, monkeypatch) -> None:
    monkeypatch.setattr(main, "build_pg_client", lambda: FakeClient(FakeCliConnection()))

    result = runner.invoke(main.cli, ["locks", "--pid", "1"])

    assert result.exit_code == 0
    assert "No advisory locks held." in result.output
