# db_locker/ports/__init__

__all__ = [
    "connection",
]
