"""Shell-style variable interpolation for composition files.

Supported forms::

    $VAR  ${VAR}
    ${VAR:-default}   default when VAR is unset or empty
    ${VAR-default}    default when VAR is unset
    ${VAR:?message}   error when VAR is unset or empty
    ${VAR?message}    error when VAR is unset
    ${VAR:+alt}       alt when VAR is set and non-empty, else empty
    ${VAR+alt}        alt when VAR is set, else empty
    $$                literal ``$``

Unset variables without a default interpolate to the empty string and are
collected so callers can warn about them.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_NAME = r"[A-Za-z_][A-Za-z0-9_]*"
_PATTERN = re.compile(
    rf"\$(?:(?P<escaped>\$)|(?P<named>{_NAME})|\{{(?P<braced>{_NAME})(?P<op>:?[-?+])?(?P<arg>[^}}]*)\}}|(?P<invalid>))"
)


class InterpolationError(ValueError):
    """Raised for ``${VAR?message}`` forms and malformed references."""

    def __init__(self, variable: str, message: str) -> None:
        super().__init__(f"{variable}: {message}")
        self.variable = variable
        self.message = message


def interpolate(
    text: str,
    env: Mapping[str, str],
    missing: set[str] | None = None,
) -> str:
    """Substitute variable references in *text* from *env*.

    Names that are unset and have no default are added to *missing*
    when a set is supplied.
    """

    def replace(match: re.Match[str]) -> str:
        if match.group("escaped") is not None:
            return "$"
        name = match.group("named") or match.group("braced")
        if name is None:
            raise InterpolationError(text, "invalid interpolation format")

        op = match.group("op")
        arg = match.group("arg") or ""
        if match.group("braced") is not None and op is None and arg:
            raise InterpolationError(name, f"invalid interpolation format for {text!r}")

        is_set = name in env
        value = env.get(name, "")
        non_empty = bool(value)

        if op is None:
            if not is_set and missing is not None:
                missing.add(name)
            return value
        if op == ":-":
            return value if non_empty else interpolate(arg, env, missing)
        if op == "-":
            return value if is_set else interpolate(arg, env, missing)
        if op == ":?":
            if not non_empty:
                raise InterpolationError(name, arg or "required variable is missing a value")
            return value
        if op == "?":
            if not is_set:
                raise InterpolationError(name, arg or "required variable is missing a value")
            return value
        if op == ":+":
            return interpolate(arg, env, missing) if non_empty else ""
        # op == "+"
        return interpolate(arg, env, missing) if is_set else ""

    return _PATTERN.sub(replace, text)


def interpolate_tree(
    node: Any,
    env: Mapping[str, str],
    missing: set[str] | None = None,
) -> Any:
    """Recursively interpolate every string scalar of a parsed YAML tree.

    Mapping keys are left untouched.
    """
    if isinstance(node, str):
        return interpolate(node, env, missing)
    if isinstance(node, Mapping):
        return {key: interpolate_tree(value, env, missing) for key, value in node.items()}
    if isinstance(node, list):
        return [interpolate_tree(item, env, missing) for item in node]
    return node
