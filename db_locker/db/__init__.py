# db_locker/db/__init__

__all__ = [
    "adapters",
    "client",
]
