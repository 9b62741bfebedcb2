"""Load composition files, proxy configuration and ``.env`` files from disk.

The composition file is read with ruamel.yaml's safe loader, every string
scalar is interpolated, then the tree is validated into
:class:`~stackctl.domain.compose.ComposeFile`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from stackctl.domain.compose import ComposeFile
from stackctl.domain.interpolation import InterpolationError, interpolate_tree
from stackctl.domain.proxy import ProxyConfig, ProxyConfigError, parse_proxy_config

logger = logging.getLogger(__name__)


class ComposeError(Exception):
    """The composition file is missing or invalid."""

    def __init__(self, path: Path | None, message: str, *, not_found: bool = False) -> None:
        where = f"{path}: " if path else ""
        super().__init__(f"{where}{message}")
        self.path = path
        self.message = message
        self.not_found = not_found


@dataclass(frozen=True)
class LoadedCompose:
    """A validated composition file plus interpolation bookkeeping."""

    path: Path
    compose: ComposeFile
    raw: dict[str, Any]
    missing_variables: frozenset[str] = field(default_factory=frozenset)


def load_env_file(path: Path) -> dict[str, str]:
    """Read a ``.env`` file; a missing file is an empty environment."""
    if not path.is_file():
        return {}
    values = dotenv_values(path)
    return {k: v for k, v in values.items() if v is not None}


def interpolation_env(env_file: Path | None, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
    """Build the interpolation environment.

    Precedence (highest first): *overrides*, the process environment,
    the project ``.env`` file.
    """
    env: dict[str, str] = {}
    if env_file is not None:
        env.update(load_env_file(env_file))
    env.update(os.environ)
    if overrides:
        env.update(overrides)
    return env


def _read_yaml(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ComposeError(path, f"cannot read file: {exc}") from exc
    try:
        return YAML(typ="safe").load(text)
    except YAMLError as exc:
        raise ComposeError(path, f"invalid YAML: {exc}") from exc


def _first_validation_problem(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def load_compose(path: Path, *, env: Mapping[str, str] | None = None) -> LoadedCompose:
    """Read, interpolate and validate a composition file.

    Raises:
        ComposeError: missing file, YAML syntax error, failed interpolation,
            or a schema violation (the first problem is reported).
    """
    if not path.is_file():
        raise ComposeError(path, "composition file not found", not_found=True)

    data = _read_yaml(path)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ComposeError(path, "top level must be a mapping")
    if not isinstance(data.get("services") or {}, dict):
        raise ComposeError(path, "'services' must be a mapping")

    missing: set[str] = set()
    try:
        resolved = interpolate_tree(data, env or {}, missing)
    except InterpolationError as exc:
        raise ComposeError(path, f"interpolation failed for {exc}") from exc

    try:
        compose = ComposeFile.model_validate(resolved)
    except ValidationError as exc:
        raise ComposeError(path, _first_validation_problem(exc)) from exc

    if missing:
        logger.debug("Unset variables in %s: %s", path, ", ".join(sorted(missing)))
    return LoadedCompose(
        path=path,
        compose=compose,
        raw=resolved,
        missing_variables=frozenset(missing),
    )


def load_proxy_config(path: Path) -> ProxyConfig:
    """Read and parse an nginx-style proxy configuration file.

    Raises:
        FileNotFoundError: the file does not exist.
        ProxyConfigError: the file is malformed.
    """
    if not path.is_file():
        raise FileNotFoundError(path)
    text = path.read_text(encoding="utf-8")
    try:
        return parse_proxy_config(text)
    except ProxyConfigError as exc:
        raise ProxyConfigError(f"{path}: {exc}") from exc
