"""Tolerant decoding of loosely typed JSON fields.

MediaWiki installations disagree on whether counters are JSON numbers or
numeric strings, and some omit fields entirely. Each helper returns a typed
value or the caller's default instead of raising.
"""

from typing import Any


def decode_optional_int(value: Any) -> int | None:
    """Decode an int from a number or numeric string, None if unparseable."""
    # bool is an int subclass but never a counter
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(float(text))
        except (ValueError, OverflowError):
            return None
    return None


def decode_int(value: Any, default: int = 0) -> int:
    """Decode an int, falling back to default."""
    decoded = decode_optional_int(value)
    return default if decoded is None else decoded


def decode_str(value: Any, default: str = "") -> str:
    """Decode a string field; non-strings yield default."""
    if isinstance(value, str):
        return value
    return default
