# db_locker/utils/identifiers.py

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# ASCII control characters (0x00-0x1F and DEL)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_ident(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Unsafe identifier: {name!r}")
    return name


def sanitize_label(label: str) -> str:
    """
    Strips ASCII control characters from a lock label.

    Labels are appended to every lock statement as a trailing `--` comment,
    so a newline (or any other control character) would let the label escape
    the comment and become part of the statement.
    """
    return _CONTROL_CHARS_RE.sub("", label)
