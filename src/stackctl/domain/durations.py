"""Compose-style duration strings (``1m30s``, ``500ms``, ``10s``)."""

from __future__ import annotations

import re

_UNIT_SECONDS: dict[str, float] = {
    "us": 0.000001,
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART = re.compile(r"(\d+(?:\.\d+)?)(us|ms|s|m|h)")


def parse_duration(value: str | int | float) -> float:
    """Convert a duration to seconds.

    Bare numbers are seconds. Strings are one or more ``<number><unit>``
    parts concatenated, as accepted by the compose file format.

    Examples:
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration("500ms")
        0.5
        >>> parse_duration(10)
        10.0
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value!r}")
        return float(value)

    text = value.strip()
    if not text:
        raise ValueError("Empty duration")
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return float(text)

    total = 0.0
    pos = 0
    for match in _PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds in the shortest compose duration form.

    >>> format_duration(90)
    '1m30s'
    >>> format_duration(0.5)
    '500ms'
    """
    if seconds <= 0:
        return "0s"
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    whole = int(round(seconds))
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)
