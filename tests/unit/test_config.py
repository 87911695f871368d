"""Tests for environment-driven settings and logging setup."""

from __future__ import annotations

import pytest
from loguru import logger

from db_locker.config import (
    build_paths,
    configure_logging,
    env_default,
    env_int,
    load_database_settings,
    load_locker_settings,
)

DB_VARS = ("DB_HOST", "DB_PORT", "DB_USER", "DB_PASSWORD", "DB_NAME", "DB_CONNECT_TIMEOUT")


@pytest.fixture
def clean_env(monkeypatch):
    for name in DB_VARS + ("LOCK_TIMEOUT_MS", "LOG_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_env_default_treats_empty_as_unset(clean_env) -> None:
    clean_env.setenv("DB_HOST", "")

    assert env_default("DB_HOST", "localhost") == "localhost"


def test_env_int_parses(clean_env) -> None:
    clean_env.setenv("DB_PORT", "6543")

    assert env_int("DB_PORT", 5432) == 6543


def test_env_int_rejects_garbage(clean_env) -> None:
    clean_env.setenv("DB_PORT", "five")

    with pytest.raises(ValueError, match="DB_PORT must be an integer"):
        env_int("DB_PORT", 5432)


def test_env_int_enforces_minimum(clean_env) -> None:
    clean_env.setenv("DB_PORT", "0")

    with pytest.raises(ValueError, match="DB_PORT must be >= 1"):
        env_int("DB_PORT", 5432)


def test_database_defaults(clean_env) -> None:
    settings = load_database_settings()

    assert (settings.host, settings.port, settings.user, settings.name) == ("localhost", 5432, "postgres", "postgres")
    assert settings.connect_timeout == 5


def test_database_settings_from_env(clean_env) -> None:
    clean_env.setenv("DB_HOST", "pg.internal")
    clean_env.setenv("DB_PORT", "5433")
    clean_env.setenv("DB_USER", "locker")
    clean_env.setenv("DB_PASSWORD", "s3cret")
    clean_env.setenv("DB_NAME", "jobs")
    clean_env.setenv("DB_CONNECT_TIMEOUT", "2")

    settings = load_database_settings()

    assert settings.host == "pg.internal"
    assert settings.port == 5433
    assert settings.user == "locker"
    assert settings.password == "s3cret"
    assert settings.name == "jobs"
    assert settings.connect_timeout == 2


def test_locker_timeout_defaults_to_single_attempt(clean_env) -> None:
    assert load_locker_settings().timeout_ms == 0


def test_locker_timeout_must_not_be_negative(clean_env) -> None:
    clean_env.setenv("LOCK_TIMEOUT_MS", "-1")

    with pytest.raises(ValueError, match="LOCK_TIMEOUT_MS must be >= 0"):
        load_locker_settings()


def test_build_paths_creates_log_dir(clean_env, tmp_path) -> None:
    log_dir = tmp_path / "nested" / "logs"
    clean_env.setenv("LOG_DIR", str(log_dir))

    paths = build_paths()

    assert paths.log_dir == log_dir
    assert log_dir.is_dir()


def test_configure_logging_writes_log_file(clean_env, tmp_path) -> None:
    clean_env.setenv("LOG_DIR", str(tmp_path))
    try:
        configure_logging(build_paths())
        logger.debug("lock acquired")
    finally:
        logger.remove()

    assert "lock acquired" in (tmp_path / "db_locker.log").read_text()
