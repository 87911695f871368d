# main.py

from __future__ import annotations

import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv
from loguru import logger

# Import internal project components
from db_locker.config import (
    build_paths,
    configure_logging,
    load_database_settings,
    load_locker_settings,
)
from db_locker.core.enums import AccessMode, LockScope
from db_locker.core.lock_key import derive_key
from db_locker.core.timeout import TimeoutDuration
from db_locker.db.adapters import adapt_connection
from db_locker.db.client import PostgresClient
from db_locker.exceptions import LockError
from db_locker.lock import PostgresLock

# --- 1. Environment Setup ---
# Load .env from the same folder as main.py for local development
ENV_PATH = Path(__file__).resolve().parent / ".env"

# Allow system environment variables (Docker/CI) to override .env
load_dotenv(dotenv_path=ENV_PATH, override=False)

# Exit code when the lock is held by someone else
EXIT_NOT_ACQUIRED = 3


# --- 2. Dependency Injection Builders ---

def build_pg_client() -> PostgresClient:
    """Initialize Postgres client using environment variables."""
    settings = load_database_settings()
    logger.info(f"Target DB: {settings.host}:{settings.port}/{settings.name} (User: {settings.user})")
    return PostgresClient.from_settings(settings)


def _hold(lock_label: str, hold_s: float) -> None:
    if hold_s > 0:
        logger.info(f"Holding {lock_label} for {hold_s}s")
        time.sleep(hold_s)


# --- 3. Main CLI Commands ---

# Configure context to allow wider help text formatting
CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'], max_content_width=120)


@click.group(context_settings=CONTEXT_SETTINGS)
def cli() -> None:
    """
    POSTGRES ADVISORY LOCK TOOL

    Inspect and exercise PostgreSQL advisory locks from the shell.

    \b
    USAGE EXAMPLES:
    1. Show the ids a key maps to:
       $ db-locker key user 4

    2. Hold an exclusive lock for 30 seconds:
       $ db-locker acquire user 4 --hold 30

    3. In another shell, try the same lock with a 2 second bound:
       $ db-locker acquire user 4 --timeout-ms 2000

    4. List advisory locks held in the database:
       $ db-locker locks
    """
    # Setup logging configuration on CLI start
    paths = build_paths()
    configure_logging(paths)


@cli.command("key", help="Print the advisory lock ids derived from NAMESPACE and VALUE.")
@click.argument("namespace")
@click.argument("value", default="")
@click.option("--label", default=None, help="Override the human-readable label.")
def key_cmd(namespace: str, value: str, label: str | None) -> None:
    try:
        lock_key = derive_key(namespace, value, label)
    except LockError as error:
        raise click.BadParameter(str(error)) from error

    click.echo(f"class_id : {lock_key.class_id}")
    click.echo(f"object_id: {lock_key.object_id}")
    click.echo(f"label    : {lock_key.label}")


@cli.command("acquire", help="Acquire a lock, hold it, then release it. Exit code 3 if the lock is busy.")
@click.argument("namespace")
@click.argument("value", default="")
@click.option("--timeout-ms", type=click.IntRange(min=0), default=lambda: load_locker_settings().timeout_ms,
              show_default="LOCK_TIMEOUT_MS or 0", help="How long to wait for a busy lock. 0 tries once.")
@click.option("--shared", is_flag=True, default=False, help="Take a shared lock instead of an exclusive one.")
@click.option("--scope", type=click.Choice([s.value for s in LockScope]), default=LockScope.SESSION.value,
              show_default=True, help="Session locks are released explicitly, transaction locks on commit.")
@click.option("--hold", "hold_s", type=click.FloatRange(min=0), default=0.0, show_default=True,
              help="Seconds to keep the lock before releasing it.")
def acquire_cmd(
        namespace: str,
        value: str,
        timeout_ms: int,
        shared: bool,
        scope: str,
        hold_s: float,
) -> None:
    """
    Acquires the lock on a dedicated connection.

    Session scope releases through the lock handle. Transaction scope opens a
    transaction and lets COMMIT release the lock.
    """
    access_mode = AccessMode.SHARE if shared else AccessMode.EXCLUSIVE
    timeout = TimeoutDuration.of_milliseconds(timeout_ms)

    try:
        lock_key = derive_key(namespace, value)
        pg_client = build_pg_client()

        with pg_client.connect() as conn:
            lock = PostgresLock(adapt_connection(conn), lock_key)

            if LockScope(scope) is LockScope.TRANSACTION:
                with conn.begin():
                    handle = lock.acquire_transaction_level(timeout, access_mode)
                    if not handle.was_acquired:
                        logger.warning(f"Lock {lock_key.label} is busy ({access_mode.value}, {timeout_ms}ms)")
                        sys.exit(EXIT_NOT_ACQUIRED)
                    logger.success(f"Acquired {lock_key.label} ({access_mode.value}, transaction)")
                    _hold(lock_key.label, hold_s)
                logger.info(f"Transaction committed, {lock_key.label} released")
                return

            with lock.acquire_session_level(timeout, access_mode) as handle:
                if not handle.was_acquired:
                    logger.warning(f"Lock {lock_key.label} is busy ({access_mode.value}, {timeout_ms}ms)")
                    sys.exit(EXIT_NOT_ACQUIRED)
                logger.success(f"Acquired {lock_key.label} ({access_mode.value}, session)")
                _hold(lock_key.label, hold_s)
            logger.info(f"Released {lock_key.label}")

    except Exception as error:
        logger.exception(f"Lock command failed: {error}")
        sys.exit(1)


@cli.command("locks", help="List advisory locks held in the current database.")
@click.option("--pid", type=int, default=None, help="Only show locks of this backend pid.")
def locks_cmd(pid: int | None) -> None:
    try:
        pg_client = build_pg_client()
        rows = pg_client.advisory_locks(pid=pid)
    except Exception as error:
        logger.exception(f"Listing locks failed: {error}")
        sys.exit(1)

    if not rows:
        click.echo("No advisory locks held.")
        return

    click.echo(f"{'pid':>8}  {'class_id':>12}  {'object_id':>12}  {'mode':<14} granted")
    for row in rows:
        click.echo(f"{row.pid:>8}  {row.class_id:>12}  {row.object_id:>12}  {row.mode:<14} {row.granted}")


if __name__ == "__main__":
    cli()
