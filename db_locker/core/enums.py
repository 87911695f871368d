# db_locker/core/enums.py

from enum import Enum


class LockScope(str, Enum):
    """Lifetime of an advisory lock."""

    # Held until explicitly released or the connection ends
    SESSION = "session"
    # Released by the server when the surrounding transaction ends
    TRANSACTION = "transaction"


class AccessMode(str, Enum):
    EXCLUSIVE = "exclusive"
    SHARE = "share"
