"""Shared pytest fixtures and test helpers for stackctl tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any

import pytest
from click.testing import CliRunner

from stackctl.config.settings import StackSettings
from stackctl.infrastructure.project import Project
from stackctl.infrastructure.runtime import ContainerStatus, RuntimeCommandError, RunSpec
from stackctl.services.telemetry import disable_telemetry

_LOGGERS = ("", "stackctl", "httpx", "httpcore")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Keep host variables out of interpolation and config discovery.

    CLI runs reconfigure logging and ``-v`` enables telemetry for the rest of
    the thread; both are put back afterwards.
    """
    for name in ("STACKCTL_CONFIG", "DB_USER", "DB_PASSWORD", "STACKCTL_PROJECT_NAME"):
        monkeypatch.delenv(name, raising=False)
    levels = {name: logging.getLogger(name).level for name in _LOGGERS}
    yield
    disable_telemetry()
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic monotonic clock; ``sleep`` advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._lock = Lock()

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


class FakeRuntime:
    """In-memory ContainerRuntime that records every call.

    Health is scripted per service: ``health[service]`` is the sequence of
    values ``inspect`` reports, the last one repeating forever. Services in
    ``exit_codes`` exit immediately with that code; services in
    ``fail_run`` make ``run`` raise.
    """

    def __init__(self) -> None:
        self.is_available = True
        self.calls: list[tuple[Any, ...]] = []
        self.started: list[str] = []
        self.containers: dict[str, dict[str, Any]] = {}
        self.networks: dict[str, list[str]] = {}
        self.volumes: set[str] = set()
        self.images: dict[str, datetime] = {}
        self.health: dict[str, list[str]] = {}
        self.exit_codes: dict[str, int] = {}
        self.fail_run: set[str] = set()
        self._lock = Lock()

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def calls_named(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    def add_container(
        self,
        name: str,
        *,
        state: str = "running",
        service: str = "",
        exit_code: int | None = None,
        health: str | None = None,
    ) -> None:
        """Pretend a container already exists (e.g. from a previous ``up``)."""
        self.containers[name] = {
            "service": service,
            "spec": None,
            "state": state,
            "exit_code": exit_code,
            "health": [health] if health else [],
        }

    # --- engine ---

    def available(self) -> bool:
        return self.is_available

    # --- networks and volumes ---

    def ensure_network(self, name: str, *, driver: str = "bridge", labels: dict[str, str] | None = None) -> bool:
        self._record("ensure_network", name, driver)
        if name in self.networks:
            return False
        self.networks[name] = []
        return True

    def ensure_volume(self, name: str, *, labels: dict[str, str] | None = None) -> bool:
        self._record("ensure_volume", name)
        if name in self.volumes:
            return False
        self.volumes.add(name)
        return True

    def network_exists(self, name: str) -> bool:
        return name in self.networks

    def network_members(self, name: str) -> list[str]:
        return list(self.networks.get(name, []))

    def remove_network(self, name: str) -> None:
        self._record("remove_network", name)
        self.networks.pop(name, None)

    def remove_volume(self, name: str) -> None:
        self._record("remove_volume", name)
        self.volumes.discard(name)

    # --- images ---

    def build(self, tag: str, build: Any, *, base_dir: Path, no_cache: bool = False) -> None:
        self._record("build", tag, no_cache)
        self.images[tag] = datetime.now(UTC)

    def image_created(self, tag: str) -> datetime | None:
        return self.images.get(tag)

    # --- containers ---

    def run(self, spec: RunSpec) -> str:
        self._record("run", spec.service)
        with self._lock:
            self.started.append(spec.service)
        if spec.service in self.fail_run:
            raise RuntimeCommandError(["docker", "run", spec.container_name], 125, "image not found")
        exited = spec.service in self.exit_codes
        self.containers[spec.container_name] = {
            "service": spec.service,
            "spec": spec,
            "state": "exited" if exited else "running",
            "exit_code": self.exit_codes.get(spec.service),
            "health": list(self.health.get(spec.service, ["healthy"])),
        }
        for net in spec.networks:
            self.networks.setdefault(net, []).append(spec.container_name)
        return f"id-{spec.container_name}"

    def inspect(self, name: str) -> ContainerStatus | None:
        container = self.containers.get(name)
        if container is None:
            return None
        health: str | None = None
        spec = container["spec"]
        seq = container["health"]
        if container["state"] == "running" and seq and (spec is None or spec.health_cmd):
            health = seq.pop(0) if len(seq) > 1 else seq[0]
        return ContainerStatus(name=name, state=container["state"], health=health, exit_code=container["exit_code"])

    def stop(self, name: str, *, timeout: int = 10) -> None:
        self._record("stop", name, timeout)
        self.containers[name]["state"] = "exited"
        self.containers[name]["exit_code"] = 0

    def remove(self, name: str) -> None:
        self._record("remove", name)
        self.containers.pop(name, None)
        for members in self.networks.values():
            if name in members:
                members.remove(name)

    def logs(self, name: str, *, tail: int | None = None) -> str:
        self._record("logs", name, tail)
        return f"started {name}\nready\n"

    def exec(self, name: str, argv: list[str]) -> tuple[int, str]:
        self._record("exec", name, argv)
        return (3 if argv[:1] == ["false"] else 0), " ".join(argv) + "\n"

    def stats(self, names: list[str]) -> list[dict[str, Any]]:
        self._record("stats", names)
        return [
            {"Name": n, "CPUPerc": "0.50%", "MemUsage": "64MiB / 2GiB", "NetIO": "1kB / 2kB", "BlockIO": "0B / 0B"}
            for n in names
        ]


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A freshly scaffolded three-tier project (db, backend, frontend)."""
    from stackctl.services.scaffold import ScaffoldService

    root = tmp_path / "shop"
    result = ScaffoldService.init(root, name="shop")
    assert result.ok, result.error
    return root


@pytest.fixture
def project(project_root: Path, fake_runtime: FakeRuntime) -> Project:
    """Project over the scaffolded files, wired to the fake runtime."""
    return make_project(project_root, fake_runtime)


@pytest.fixture
def _isolated_project(project_root: Path, fake_runtime: FakeRuntime, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the scaffolded project and route the CLI to the fake runtime.

    Use via ``@pytest.mark.usefixtures("_isolated_project")`` on command test
    classes.
    """
    monkeypatch.chdir(project_root)
    monkeypatch.setattr(
        "stackctl.infrastructure.project.DockerCli",
        lambda *args, **kwargs: fake_runtime,
    )


# ---------------------------------------------------------------------------
# Shared test helpers (used across service test modules)
# ---------------------------------------------------------------------------


def make_project(root: Path, runtime: Any = None, **settings: Any) -> Project:
    """Build a Project with synchronous plugin dispatch."""
    p = Project(StackSettings.from_cli(project_root=root, **settings), runtime=runtime)
    p.init_event_bus(sync=True)
    return p


def write_compose(root: Path, text: str) -> Path:
    """Write ``compose.yaml`` into *root* and return its path."""
    root.mkdir(parents=True, exist_ok=True)
    path = root / "compose.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def write_proxy(root: Path, text: str) -> Path:
    path = root / "frontend" / "nginx.conf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def issue_rules(result: Any, severity: str | None = None) -> list[str]:
    """Rules of the issues in a check result, optionally filtered by severity."""
    return [i["rule"] for i in result.data["issues"] if severity is None or i["severity"] == severity]
