"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime

_SECRET_MARKERS = ("PASSWORD", "SECRET", "TOKEN", "KEY", "CREDENTIAL")


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (for event logs)."""
    return datetime.now(UTC).isoformat()


def is_secret_name(name: str) -> bool:
    """Whether an environment variable name looks like it holds a secret.

    Examples:
        >>> is_secret_name("SPRING_DATASOURCE_PASSWORD")
        True
        >>> is_secret_name("POSTGRES_DB")
        False
    """
    upper = name.upper()
    return any(marker in upper for marker in _SECRET_MARKERS)


def mask_value(value: str | None) -> str | None:
    """Replace a secret value with asterisks, keeping unset values unset."""
    if value is None:
        return None
    return "****" if value else ""
