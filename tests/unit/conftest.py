"""
Shared fixtures for unit tests.

FakeConnectionAdapter stands in for a database connection: it records every
statement the locker sends and answers from a per-function response table.
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

import pytest

from db_locker.db.adapters import is_lock_not_available

_FUNCTION_RE = re.compile(r"^SELECT (\w+)\(")


class LockNotAvailable(Exception):
    """Mimics psycopg2.errors.LockNotAvailable."""

    pgcode = "55P03"


class ConnectionLost(Exception):
    """A database error that is not lock contention."""

    pgcode = "08006"


class FakeConnectionAdapter:
    def __init__(self, in_transaction: bool = False, autobegin: bool = False, lock_timeout: str = "0") -> None:
        self.in_transaction = in_transaction
        self.autobegin = autobegin
        self.lock_timeout = lock_timeout
        self.statements: list[tuple[str, dict]] = []
        self.responses: dict[str, Any] = {}

    # -- ConnectionAdapter --------------------------------------------------

    def fetch_scalar(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run(sql, params)

    def execute(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> None:
        self._run(sql, params)

    def is_transaction_active(self) -> bool:
        return self.in_transaction

    def is_lock_unavailable(self, error: BaseException) -> bool:
        return is_lock_not_available(error)

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def command_of(sql: str) -> str:
        """`pg_try_advisory_lock` for lock calls, the bare statement otherwise."""
        match = _FUNCTION_RE.match(sql)
        if match:
            return match.group(1)
        return sql.split(" -- ")[0]

    @property
    def commands(self) -> list[str]:
        return [self.command_of(sql) for sql, _ in self.statements]

    def _run(self, sql: str, params: Optional[Mapping[str, Any]]) -> Any:
        self.statements.append((sql, dict(params or {})))
        if self.autobegin:
            self.in_transaction = True

        command = self.command_of(sql)
        if command in self.responses:
            outcome = self.responses[command]
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        if command == "SHOW lock_timeout":
            return self.lock_timeout
        if command == "set_config":
            self.lock_timeout = params["lock_timeout"]
            return self.lock_timeout
        if command.startswith(("pg_try_", "pg_advisory_unlock")) and command != "pg_advisory_unlock_all":
            return True
        # blocking lock functions and unlock_all return void
        return None


@pytest.fixture
def fake_connection() -> FakeConnectionAdapter:
    return FakeConnectionAdapter()


@pytest.fixture
def fake_transaction() -> FakeConnectionAdapter:
    return FakeConnectionAdapter(in_transaction=True)
