# db_locker/core/lock_key.py

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from db_locker.exceptions import LockValidationError
from db_locker.utils.identifiers import sanitize_label

INT32_MIN = -2_147_483_648
INT32_MAX = 2_147_483_647

_UINT32_MASK = 0xFFFFFFFF


def _to_signed_int32(unsigned: int) -> int:
    """Reinterprets an unsigned 32-bit value the way PostgreSQL reads an int4."""
    unsigned &= _UINT32_MASK
    return unsigned - 0x1_0000_0000 if unsigned > INT32_MAX else unsigned


def _check_int32(field: str, value: int) -> None:
    # bool is an int subclass; True is never a meaningful lock id
    if isinstance(value, bool) or not isinstance(value, int):
        raise LockValidationError(f"{field} must be an integer, got={value!r}")
    if value < INT32_MIN or value > INT32_MAX:
        raise LockValidationError(
            f"{field}={value} is out of int32 range [{INT32_MIN}, {INT32_MAX}]"
        )


@dataclass(frozen=True)
class LockKey:
    """
    Two-part key of a PostgreSQL advisory lock.

    Maps onto the `(int4, int4)` flavour of the pg_advisory_* functions.
    `label` is a human-readable name that is attached to every lock statement
    as a trailing SQL comment, so it shows up in pg_stat_activity and in the
    server logs. It is never interpreted.
    """
    class_id: int
    object_id: int
    label: str = ""

    def __post_init__(self) -> None:
        _check_int32("class_id", self.class_id)
        _check_int32("object_id", self.object_id)
        # frozen dataclass: bypass __setattr__ to store the sanitized label
        object.__setattr__(self, "label", sanitize_label(self.label))

    @classmethod
    def derive(cls, namespace: str, value: str = "", label: Optional[str] = None) -> "LockKey":
        """
        Builds a key from a `(namespace, value)` pair.

        The ids come from a 64-bit SHA-256 prefix of `namespace + NUL + value`,
        split into two signed halves. The NUL separator keeps
        ("ab", "cd") and ("a", "bcd") apart. The result depends on nothing but
        the two strings, so independent processes agree on the key without any
        shared registry.
        """
        if not isinstance(namespace, str) or not namespace:
            raise LockValidationError(f"namespace must be a non-empty string, got={namespace!r}")
        if not isinstance(value, str):
            raise LockValidationError(f"value must be a string, got={value!r}")

        digest = hashlib.sha256(f"{namespace}\x00{value}".encode("utf-8")).digest()
        combined = int.from_bytes(digest[:8], byteorder="big")

        return cls(
            class_id=_to_signed_int32(combined >> 32),
            object_id=_to_signed_int32(combined),
            label=f"[{namespace}:{value}]" if label is None else label,
        )

    @classmethod
    def direct(cls, class_id: int, object_id: int, label: Optional[str] = None) -> "LockKey":
        """Wraps ids that were already computed elsewhere."""
        return cls(
            class_id=class_id,
            object_id=object_id,
            label=f"[{class_id}:{object_id}]" if label is None else label,
        )

    def as_params(self) -> dict[str, int]:
        return {"class_id": self.class_id, "object_id": self.object_id}

    def __str__(self) -> str:
        return self.label


def derive_key(namespace: str, value: str = "", label: Optional[str] = None) -> LockKey:
    return LockKey.derive(namespace, value, label)


def direct_key(class_id: int, object_id: int, label: Optional[str] = None) -> LockKey:
    return LockKey.direct(class_id, object_id, label)
