"""Extension layer — plugin system via pluggy.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus single-file plugins under ``.stackctl/plugins/``.
INVARIANT: Plugin failures are warnings, never errors.
"""

from stackctl.plugins.event_bus import EventBus
from stackctl.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager"]
