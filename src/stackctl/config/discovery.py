"""Config and composition file discovery.

Walk-up finder locates stackctl.toml, similar to how git finds .git/.
Supports STACKCTL_CONFIG env var and --config CLI flag overrides.
"""

from __future__ import annotations

import os
from pathlib import Path

from stackctl.config.models import COMPOSE_FILENAMES

CONFIG_FILENAME = "stackctl.toml"
CONFIG_ENV_VAR = "STACKCTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for stackctl.toml.

    Returns the path to the config file, or None if not found.
    Checks STACKCTL_CONFIG env var first.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        if p.is_file():
            return p
        return None

    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def find_compose_file(root: Path, explicit: str | None = None) -> Path | None:
    """Locate the composition file in *root*.

    An *explicit* name (relative to *root*, or absolute) wins; otherwise
    the conventional names are tried in order.
    """
    if explicit:
        p = Path(explicit)
        if not p.is_absolute():
            p = root / p
        return p if p.is_file() else None
    for name in COMPOSE_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None
