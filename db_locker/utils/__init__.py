# db_locker/utils/__init__

__all__ = [
    "identifiers",
]
