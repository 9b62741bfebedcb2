"""Plugin discovery for stackctl.

Two sources: packages advertising the ``stackctl.plugins`` entry point
group, and single-file plugins in a project's ``.stackctl/plugins/``.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from pathlib import Path

import pluggy

from stackctl.plugins.hookspecs import StackctlHookSpec

PROJECT_NAME = "stackctl"
ENTRY_POINT_GROUP = "stackctl.plugins"
LOCAL_MODULE_PREFIX = "stackctl_local_plugin_"

logger = logging.getLogger(__name__)


class PluginManager:
    """pluggy manager preloaded with the stackctl hook specifications."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(StackctlHookSpec)

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        """Register a plugin instance (built-ins, tests, local files)."""
        resolved = name or type(plugin).__name__
        self._pm.register(plugin, name=resolved)
        logger.debug("Registered plugin: %s", resolved)

    def list_plugin_names(self) -> list[str]:
        return sorted(self._pm.get_name(p) or type(p).__name__ for p in self._pm.get_plugins())

    def discover_and_load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then ``*.py`` plugins from *local_dir*.

        Returns the names of every registered plugin.
        """
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        self._instantiate_entry_point_classes()
        if local_dir is not None and local_dir.is_dir():
            for py_file in sorted(local_dir.glob("*.py")):
                if not py_file.name.startswith("_"):
                    self._load_local_file(py_file)
        return self.list_plugin_names()

    def _instantiate_entry_point_classes(self) -> None:
        # Entry points may name a plugin class; hooks need an instance.
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin) or not has_hook_impls(plugin):
                continue
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                self._pm.register(plugin(), name=name)
            except Exception:
                logger.warning("Failed to instantiate entry-point plugin %s", name, exc_info=True)

    def _load_local_file(self, py_file: Path) -> None:
        """Import *py_file* and register each class in it that has hooks.

        A file that fails to import, or a class that fails to construct,
        is logged and skipped so one broken plugin cannot stop ``up``.
        """
        module_name = LOCAL_MODULE_PREFIX + py_file.stem
        spec = importlib.util.spec_from_file_location(module_name, py_file)
        if spec is None or spec.loader is None:
            logger.warning("Could not create module spec for %s", py_file)
            return
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
            sys.modules.pop(module_name, None)
            return

        for _name, cls in inspect.getmembers(module, inspect.isclass):
            if cls.__module__ != module_name or not has_hook_impls(cls):
                continue
            try:
                self.register_plugin(cls(), name=f"{module_name}.{cls.__name__}")
            except Exception:
                logger.warning("Failed to instantiate plugin class %s from %s", cls.__name__, py_file, exc_info=True)


def has_hook_impls(cls: type) -> bool:
    """Whether *cls* has methods marked with ``HookimplMarker("stackctl")``."""
    return any(
        getattr(getattr(cls, attr, None), f"{PROJECT_NAME}_impl", None)
        for attr in dir(cls)
        if not attr.startswith("_")
    )
