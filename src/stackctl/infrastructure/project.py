"""Project — the single dependency injected into every service.

Owns the project root, the lazily loaded composition file and proxy
configuration, the dependency graph, the container runtime and the
plugin event bus. Nothing is read from disk or executed until a service
asks for it, so ``--help`` and ``init`` never touch the engine.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from stackctl.config.discovery import find_compose_file
from stackctl.domain.dependencies import DependencyGraph
from stackctl.infrastructure.loader import (
    ComposeError,
    LoadedCompose,
    interpolation_env,
    load_compose,
    load_proxy_config,
)
from stackctl.infrastructure.runtime import DockerCli, project_slug, resource_name

if TYPE_CHECKING:
    from stackctl.config.settings import StackSettings
    from stackctl.domain.compose import ComposeFile
    from stackctl.domain.proxy import ProxyConfig
    from stackctl.infrastructure.runtime import ContainerRuntime
    from stackctl.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)

STATE_DIRNAME = ".stackctl"


class Project:
    """A composition file plus everything needed to operate on it."""

    def __init__(
        self,
        settings: StackSettings,
        *,
        runtime: ContainerRuntime | None = None,
    ) -> None:
        self.settings = settings
        self.root: Path = settings.project_root
        self._runtime = runtime
        self._loaded: LoadedCompose | None = None
        self._graph: DependencyGraph | None = None
        self._proxy: ProxyConfig | None = None
        self._proxy_loaded = False
        self._event_bus: EventBus | None = None

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIRNAME

    @property
    def compose_path(self) -> Path | None:
        explicit = self.settings.compose_file or self.settings.project.compose_file
        return find_compose_file(self.root, explicit)

    @property
    def proxy_path(self) -> Path:
        return self.root / self.settings.project.proxy_config

    @property
    def env_path(self) -> Path:
        return self.root / self.settings.project.env_file

    @property
    def loaded(self) -> LoadedCompose:
        """The validated composition file (loaded on first access).

        Raises:
            ComposeError: no composition file found, or it is invalid.
        """
        if self._loaded is None:
            path = self.compose_path
            if path is None:
                wanted = self.settings.compose_file or self.settings.project.compose_file
                raise ComposeError(
                    self.root / wanted if wanted else None,
                    f"no composition file found in {self.root}",
                    not_found=True,
                )
            env = interpolation_env(self.env_path)
            self._loaded = load_compose(path, env=env)
        return self._loaded

    @property
    def compose(self) -> ComposeFile:
        return self.loaded.compose

    @property
    def compose_dir(self) -> Path:
        """Directory relative build contexts, bind mounts and env files resolve against."""
        return self.loaded.path.parent

    @property
    def proxy(self) -> ProxyConfig | None:
        """Parsed proxy configuration, or None when the file does not exist.

        Raises:
            ProxyConfigError: the file exists but is malformed.
        """
        if not self._proxy_loaded:
            try:
                self._proxy = load_proxy_config(self.proxy_path)
            except FileNotFoundError:
                self._proxy = None
            self._proxy_loaded = True
        return self._proxy

    @property
    def graph(self) -> DependencyGraph:
        if self._graph is None:
            self._graph = DependencyGraph(self.compose)
        return self._graph

    @property
    def name(self) -> str:
        """Project name: CLI flag, then TOML, then the file's ``name``, then the directory."""
        candidate = self.settings.project_name or self.settings.project.name
        if not candidate:
            try:
                candidate = self.compose.name
            except ComposeError:
                candidate = None
        return project_slug(candidate or self.root.resolve().name)

    def network_name(self, network: str) -> str:
        spec = self.compose.networks.get(network)
        return spec.name if spec and spec.name else resource_name(self.name, network)

    def volume_name(self, volume: str) -> str:
        spec = self.compose.volumes.get(volume)
        return spec.name if spec and spec.name else resource_name(self.name, volume)

    # ------------------------------------------------------------------
    # Runtime and plugins
    # ------------------------------------------------------------------

    @property
    def runtime(self) -> ContainerRuntime:
        if self._runtime is None:
            cfg = self.settings.runtime
            self._runtime = DockerCli(cfg.engine, timeout=cfg.command_timeout)
        return self._runtime

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    def init_event_bus(self, *, sync: bool = False) -> None:
        """Discover plugins and create the event bus."""
        from stackctl.plugins.builtins.event_log import EventLogPlugin
        from stackctl.plugins.event_bus import EventBus
        from stackctl.plugins.manager import PluginManager

        pm = PluginManager()
        if self.settings.plugins.event_log.get("enabled", True):
            pm.register_plugin(EventLogPlugin(self.state_dir / "events.jsonl"), name="event_log")
        pm.discover_and_load(local_dir=self.state_dir / "plugins")
        self._event_bus = EventBus(pm, sync=sync)

    def close(self) -> None:
        if self._event_bus is not None:
            self._event_bus.shutdown()
            self._event_bus = None
