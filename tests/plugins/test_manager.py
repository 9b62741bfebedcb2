"""Tests for PluginManager registration and entry-point discovery."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pluggy
import pytest

from stackctl.plugins.builtins.event_log import EventLogPlugin
from stackctl.plugins.manager import PluginManager, has_hook_impls

hookimpl = pluggy.HookimplMarker("stackctl")


class CheckPlugin:
    def __init__(self) -> None:
        self.seen: list[int] = []

    @hookimpl
    def post_check(self, project: str, errors: int, warnings: int, issues: list[dict[str, Any]]) -> None:
        self.seen.append(errors)


class NotAPlugin:
    def post_check(self) -> None:
        pass


class TestRegistration:
    def test_register_and_list(self, tmp_path: Path) -> None:
        pm = PluginManager()
        pm.register_plugin(EventLogPlugin(tmp_path / "events.jsonl"), name="event_log")
        pm.register_plugin(CheckPlugin())
        assert pm.list_plugin_names() == ["CheckPlugin", "event_log"]

    def test_hook_reaches_registered_plugin(self) -> None:
        pm = PluginManager()
        plugin = CheckPlugin()
        pm.register_plugin(plugin)
        pm.hook.post_check(project="shop", errors=2, warnings=0, issues=[])
        assert plugin.seen == [2]

    def test_has_hook_impls(self) -> None:
        assert has_hook_impls(CheckPlugin)
        assert not has_hook_impls(NotAPlugin)


class TestEntryPoints:
    def test_nothing_installed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        pm = PluginManager()
        monkeypatch.setattr(pm._pm, "load_setuptools_entrypoints", lambda group: 0)
        assert pm.discover_and_load() == []

    def test_entry_point_classes_are_instantiated(self, monkeypatch: pytest.MonkeyPatch) -> None:
        pm = PluginManager()

        def _load(group: str) -> int:
            assert group == "stackctl.plugins"
            pm._pm.register(CheckPlugin, name="check")
            return 1

        monkeypatch.setattr(pm._pm, "load_setuptools_entrypoints", _load)
        assert pm.discover_and_load() == ["check"]
        assert isinstance(pm._pm.get_plugin("check"), CheckPlugin)
