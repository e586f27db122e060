"""Parsing of human-readable window durations such as ``"1 h"``."""

from __future__ import annotations

import re

_DURATION_RE = re.compile(r"^\s*(\d+)\s*(ms|s|m|h|d)\s*$")

_UNIT_MS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


def parse_duration(value: str) -> int:
    """Convert a duration string to milliseconds.

    Args:
        value: Amount and unit, e.g. ``"1 h"``, ``"15m"``, ``"500 ms"``.

    Returns:
        Duration in milliseconds.

    Raises:
        ValueError: If the string is malformed or the duration is zero.

    Examples:
        >>> parse_duration("1 h")
        3600000
        >>> parse_duration("15 m")
        900000
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(
            f"Invalid duration {value!r}; expected '<number> <unit>' with unit in ms, s, m, h, d"
        )

    amount, unit = int(match.group(1)), match.group(2)
    if amount <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}")
    return amount * _UNIT_MS[unit]
