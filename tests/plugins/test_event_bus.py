"""Tests for EventBus — inline and background hook dispatch."""

from __future__ import annotations

from typing import Any

import pluggy

from stackctl.plugins.event_bus import EventBus
from stackctl.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("stackctl")


# ---------------------------------------------------------------------------
# Fake plugins for testing
# ---------------------------------------------------------------------------


class RecordingPlugin:
    """Plugin that records all hook calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def post_up(self, project: str, ok: bool, states: dict[str, str]) -> None:
        self.calls.append(("post_up", {"project": project, "ok": ok, "states": states}))

    @hookimpl
    def post_down(self, project: str, removed: list[str]) -> None:
        self.calls.append(("post_down", {"project": project, "removed": removed}))


class FailingPlugin:
    """Plugin that always raises on post_up."""

    @hookimpl
    def post_up(self, project: str, ok: bool, states: dict[str, str]) -> None:
        raise RuntimeError("plugin exploded")


def _bus(*plugins: object, sync: bool = True) -> EventBus:
    pm = PluginManager()
    for plugin in plugins:
        pm.register_plugin(plugin)
    return EventBus(pm, sync=sync)


class TestSyncDispatch:
    def test_hook_called_inline(self) -> None:
        plugin = RecordingPlugin()
        bus = _bus(plugin)
        bus.dispatch("post_up", {"project": "shop", "ok": True, "states": {"db": "healthy"}})
        assert plugin.calls == [("post_up", {"project": "shop", "ok": True, "states": {"db": "healthy"}})]

    def test_unknown_hook_ignored(self) -> None:
        bus = _bus(RecordingPlugin())
        bus.dispatch("no_such_hook", {})
        assert bus.drain() == []

    def test_failure_becomes_warning(self) -> None:
        recorder = RecordingPlugin()
        bus = _bus(FailingPlugin(), recorder)
        bus.dispatch("post_up", {"project": "shop", "ok": False, "states": {}})
        assert bus.drain() == ["Plugin hook post_up failed: plugin exploded"]
        assert bus.drain() == []


class TestAsyncDispatch:
    def test_drain_waits_for_pending(self) -> None:
        plugin = RecordingPlugin()
        bus = _bus(plugin, sync=False)
        bus.dispatch("post_down", {"project": "shop", "removed": ["shop-db"]})
        bus.dispatch("post_down", {"project": "shop", "removed": []})
        assert bus.drain() == []
        assert len(plugin.calls) == 2
        bus.shutdown()

    def test_async_failure_surfaces_on_drain(self) -> None:
        bus = _bus(FailingPlugin(), sync=False)
        bus.dispatch("post_up", {"project": "shop", "ok": True, "states": {}})
        assert bus.drain() == ["Plugin hook post_up failed: plugin exploded"]
        bus.shutdown()

    def test_shutdown_is_idempotent(self) -> None:
        bus = _bus(sync=False)
        bus.shutdown()
        bus.shutdown()
        bus.dispatch("post_down", {"project": "shop", "removed": []})
