"""Key validation shared by the store and typed preferences."""

from __future__ import annotations

import unicodedata
from typing import Any, Final

from prefstore.errors import InvalidKeyError

MAX_KEY_LENGTH: Final = 256


def validate_key(key: Any) -> str:
    """Check that a key is usable before any I/O happens.

    Args:
        key: Candidate key

    Returns:
        The key, unchanged

    Raises:
        InvalidKeyError: If the key is not a non-empty, printable string
    """
    if not isinstance(key, str):
        raise InvalidKeyError(f"key must be a string, got {type(key).__name__}")
    if not key:
        raise InvalidKeyError("key must not be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidKeyError(f"key longer than {MAX_KEY_LENGTH} characters", key=key[:32])
    if key != key.strip():
        raise InvalidKeyError("key must not start or end with whitespace", key=key)
    if any(unicodedata.category(ch) == "Cc" for ch in key):
        raise InvalidKeyError("key must not contain control characters", key=repr(key))
    return key


def validate_value(key: str, value: Any) -> str:
    """Check that a value is storable as-is.

    Raises:
        TypeError: If the value is not a string
    """
    if not isinstance(value, str):
        raise TypeError(f"value for {key!r} must be a str, got {type(value).__name__}")
    return value
