# db_locker/config.py

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger


def env_default(name: str, default: Optional[str] = None) -> Optional[str]:
    """Retrieve env var, returning default if None or empty."""
    val = os.getenv(name)
    return val if val not in (None, "") else default


def env_int(name: str, default: int, *, min_value: int = 1) -> int:
    """
    Parses an environment variable as an integer.
    Returns the default value if the variable is unset.
    """
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        val = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got={raw!r}") from e
    if val < min_value:
        raise ValueError(f"{name} must be >= {min_value}, got={val}")
    return val


def project_root() -> Path:
    """Returns the absolute path to the project root directory."""
    return Path(__file__).resolve().parents[1]


@dataclass(frozen=True)
class Paths:
    """Immutable container for project directory paths."""
    base_dir: Path
    log_dir: Path


def build_paths() -> Paths:
    """
    Resolves project paths and creates the log directory on disk.
    Defaults log_dir to ./logs if LOG_DIR env var is not set.
    """
    base = project_root()

    log_dir = Path(os.getenv("LOG_DIR", str(base / "logs")))
    log_dir.mkdir(parents=True, exist_ok=True)

    return Paths(base_dir=base, log_dir=log_dir)


@dataclass(frozen=True)
class DatabaseSettings:
    """Immutable container for PostgreSQL connection settings."""
    host: str
    port: int
    user: str
    password: str
    name: str
    connect_timeout: int


def load_database_settings() -> DatabaseSettings:
    """
    Loads connection settings from environment variables.

    - DB_HOST / DB_PORT / DB_USER / DB_PASSWORD / DB_NAME
    - DB_CONNECT_TIMEOUT: seconds to wait for the TCP connection
    """
    return DatabaseSettings(
        host=str(env_default("DB_HOST", "localhost")),
        port=env_int("DB_PORT", 5432),
        user=str(env_default("DB_USER", "postgres")),
        password=str(env_default("DB_PASSWORD", "postgres")),
        name=str(env_default("DB_NAME", "postgres")),
        connect_timeout=env_int("DB_CONNECT_TIMEOUT", 5),
    )


@dataclass(frozen=True)
class LockerSettings:
    """
    Defaults for the command line tool.

    The library itself never applies a default timeout.
    """
    timeout_ms: int


def load_locker_settings() -> LockerSettings:
    """
    - LOCK_TIMEOUT_MS: how long `db-locker acquire` waits for a busy lock (0 = try once)
    """
    return LockerSettings(
        timeout_ms=env_int("LOCK_TIMEOUT_MS", 0, min_value=0),
    )


def configure_logging(paths: Paths) -> None:
    """Configure loguru sinks (console + file)."""
    logger.remove()

    # Console sink
    logger.add(
        sys.stderr,
        level=os.getenv("LOG_LEVEL", "INFO"),
        colorize=True,
        backtrace=False,
        diagnose=False,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
               "<level>{level}</level> | "
               "<level>{message}</level>",
    )

    # File sink
    logger.add(
        str(paths.log_dir / "db_locker.log"),
        rotation="10 MB",
        retention="7 days",
        level="DEBUG",
        backtrace=False,
        diagnose=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
    )
