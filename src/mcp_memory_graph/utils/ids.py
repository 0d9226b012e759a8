"""Compact, time-sortable identifiers for memories and observations."""

import secrets
import time

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_TIME_CHARS = 8
_RANDOM_CHARS = 10


def _encode(value: int, width: int) -> str:
    chars = []
    for _ in range(width):
        value, rem = divmod(value, len(_ALPHABET))
        chars.append(_ALPHABET[rem])
    return "".join(reversed(chars))


def generate_id() -> str:
    """18-character base62 id: millisecond timestamp prefix, random suffix.

    Ids created later sort after earlier ones (to the millisecond).
    """
    millis = time.time_ns() // 1_000_000
    random_part = secrets.randbits(59)
    return _encode(millis, _TIME_CHARS) + _encode(random_part, _RANDOM_CHARS)


def is_valid_id(value: str) -> bool:
    return len(value) == _TIME_CHARS + _RANDOM_CHARS and all(c in _ALPHABET for c in value)
