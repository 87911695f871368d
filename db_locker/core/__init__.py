# db_locker/core/__init__

__all__ = [
    "enums",
    "lock_key",
    "timeout",
    "handles",
    "locker",
]
