"""Container engine adapter.

:class:`ContainerRuntime` is the seam between the control loop and the
engine. :class:`DockerCli` implements it by shelling out to a
Docker-compatible CLI (``docker`` or ``podman``); tests substitute an
in-memory fake.

Resource naming follows the compose conventions so stacks started by
either tool look alike:

* containers ``<project>-<service>-1`` (unless ``container_name`` is set)
* networks and named volumes ``<project>_<name>``
* built images ``<project>-<service>``
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from stackctl.domain.durations import format_duration

if TYPE_CHECKING:
    from stackctl.domain.compose import BuildSpec, ComposeFile, Service

logger = logging.getLogger(__name__)

LABEL_PROJECT = "com.stackctl.project"
LABEL_SERVICE = "com.stackctl.service"


class RuntimeCommandError(Exception):
    """An engine command exited non-zero (or could not be run)."""

    def __init__(self, argv: list[str], returncode: int, stderr: str) -> None:
        cmd = " ".join(argv[:3])
        super().__init__(f"{cmd} failed with exit code {returncode}: {stderr.strip()}")
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContainerStatus:
    """What the engine reports about one container."""

    name: str
    state: str
    health: str | None = None
    exit_code: int | None = None

    @property
    def running(self) -> bool:
        return self.state == "running"


@dataclass(frozen=True)
class RunSpec:
    """Everything needed to start one service container."""

    service: str
    container_name: str
    image: str
    networks: tuple[str, ...] = ()
    ports: tuple[str, ...] = ()
    environment: dict[str, str | None] = field(default_factory=dict)
    env_files: tuple[str, ...] = ()
    mounts: tuple[str, ...] = ()
    command: tuple[str, ...] = ()
    health_cmd: str | None = None
    health_options: dict[str, str] = field(default_factory=dict)
    restart: str | None = None
    labels: dict[str, str] = field(default_factory=dict)


class ContainerRuntime(Protocol):
    """Operations the orchestrator needs from a container engine."""

    def available(self) -> bool: ...

    def ensure_network(self, name: str, *, driver: str = "bridge", labels: dict[str, str] | None = None) -> bool: ...

    def ensure_volume(self, name: str, *, labels: dict[str, str] | None = None) -> bool: ...

    def network_exists(self, name: str) -> bool: ...

    def network_members(self, name: str) -> list[str]: ...

    def remove_network(self, name: str) -> None: ...

    def remove_volume(self, name: str) -> None: ...

    def build(self, tag: str, build: BuildSpec, *, base_dir: Path, no_cache: bool = False) -> None: ...

    def image_created(self, tag: str) -> datetime | None: ...

    def run(self, spec: RunSpec) -> str: ...

    def inspect(self, name: str) -> ContainerStatus | None: ...

    def stop(self, name: str, *, timeout: int = 10) -> None: ...

    def remove(self, name: str) -> None: ...

    def logs(self, name: str, *, tail: int | None = None) -> str: ...

    def exec(self, name: str, argv: list[str]) -> tuple[int, str]: ...

    def stats(self, names: list[str]) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Naming and RunSpec construction
# ---------------------------------------------------------------------------


def project_slug(name: str) -> str:
    """Normalize a project name the way container engines expect.

    Lowercase letters, digits, dashes and underscores only.

    Examples:
        >>> project_slug("My Shop App")
        'my-shop-app'
        >>> project_slug("__x__")
        'x'
    """
    slug = re.sub(r"[^a-z0-9_-]+", "-", name.lower()).strip("-_")
    return slug or "stack"


def container_name(project: str, service: Service) -> str:
    return service.container_name or f"{project}-{service.name}-1"


def resource_name(project: str, name: str) -> str:
    return f"{project}_{name}"


def image_tag(project: str, service: Service) -> str:
    """Image reference a service runs: its ``image`` or the project build tag."""
    if service.build is not None:
        return service.image or f"{project}-{service.name}"
    assert service.image is not None
    return service.image


def build_run_spec(project: str, compose: ComposeFile, service: Service, *, base_dir: Path) -> RunSpec:
    """Translate a composition service into engine run arguments."""
    mounts: list[str] = []
    for mount in service.volumes:
        mode = ":ro" if mount.read_only else ""
        if mount.kind == "anonymous":
            mounts.append(mount.target)
        elif mount.kind == "bind":
            assert mount.source is not None
            source = Path(mount.source).expanduser()
            if not source.is_absolute():
                source = (base_dir / source).resolve()
            mounts.append(f"{source}:{mount.target}{mode}")
        else:
            assert mount.source is not None
            spec = compose.volumes.get(mount.source)
            vol = spec.name if spec and spec.name else resource_name(project, mount.source)
            mounts.append(f"{vol}:{mount.target}{mode}")

    networks: list[str] = []
    for net in compose.service_networks(service.name):
        spec = compose.networks.get(net)
        networks.append(spec.name if spec and spec.name else resource_name(project, net))

    health_cmd: str | None = None
    health_options: dict[str, str] = {}
    hc = service.healthcheck
    if hc is not None and hc.enabled:
        health_cmd = hc.command
        health_options = {
            "interval": format_duration(hc.interval),
            "timeout": format_duration(hc.timeout),
            "retries": str(hc.retries),
            "start-period": format_duration(hc.start_period),
        }

    env_files = tuple(str((base_dir / f).resolve()) for f in service.env_file)
    return RunSpec(
        service=service.name,
        container_name=container_name(project, service),
        image=image_tag(project, service),
        networks=tuple(networks),
        ports=tuple(str(p) for p in service.ports),
        environment=dict(service.environment),
        env_files=env_files,
        mounts=tuple(mounts),
        command=tuple(service.command or ()),
        health_cmd=health_cmd,
        health_options=health_options,
        restart=service.restart,
        labels={LABEL_PROJECT: project, LABEL_SERVICE: service.name},
    )


def run_arguments(spec: RunSpec) -> list[str]:
    """``run`` arguments (after the engine binary) for *spec*."""
    args = ["run", "--detach", "--name", spec.container_name]
    if spec.networks:
        args += ["--network", spec.networks[0], "--network-alias", spec.service]
    for key, value in sorted(spec.labels.items()):
        args += ["--label", f"{key}={value}"]
    for port in spec.ports:
        args += ["--publish", port]
    for env_file in spec.env_files:
        args += ["--env-file", env_file]
    for key, value in spec.environment.items():
        args += ["--env", key if value is None else f"{key}={value}"]
    for mount in spec.mounts:
        args += ["--volume", mount]
    if spec.health_cmd:
        args += ["--health-cmd", spec.health_cmd]
        for option, value in spec.health_options.items():
            args += [f"--health-{option}", value]
    if spec.restart:
        args += ["--restart", spec.restart]
    args.append(spec.image)
    args.extend(spec.command)
    return args


# ---------------------------------------------------------------------------
# Docker-compatible CLI implementation
# ---------------------------------------------------------------------------


class DockerCli:
    """:class:`ContainerRuntime` backed by a Docker-compatible CLI binary."""

    def __init__(self, engine: str = "docker", *, timeout: float = 600.0) -> None:
        self._engine = engine
        self._timeout = timeout

    @property
    def engine(self) -> str:
        return self._engine

    def _run(self, args: list[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        argv = [self._engine, *args]
        logger.debug("engine: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RuntimeCommandError(argv, 127, f"{self._engine}: not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise RuntimeCommandError(argv, -1, f"timed out after {self._timeout}s") from exc
        if check and proc.returncode != 0:
            raise RuntimeCommandError(argv, proc.returncode, proc.stderr)
        return proc

    # --- engine ---

    def available(self) -> bool:
        if shutil.which(self._engine) is None:
            return False
        try:
            proc = self._run(["version", "--format", "{{.Server.Version}}"], check=False)
        except RuntimeCommandError:
            return False
        return proc.returncode == 0

    # --- networks and volumes ---

    def network_exists(self, name: str) -> bool:
        return self._run(["network", "inspect", name], check=False).returncode == 0

    def ensure_network(self, name: str, *, driver: str = "bridge", labels: dict[str, str] | None = None) -> bool:
        """Create the network if missing. Returns True when it was created."""
        if self.network_exists(name):
            return False
        args = ["network", "create", "--driver", driver]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        self._run([*args, name])
        return True

    def network_members(self, name: str) -> list[str]:
        proc = self._run(["network", "inspect", "--format", "{{json .Containers}}", name])
        containers = json.loads(proc.stdout or "null") or {}
        return sorted(str(info.get("Name", "")) for info in containers.values())

    def ensure_volume(self, name: str, *, labels: dict[str, str] | None = None) -> bool:
        if self._run(["volume", "inspect", name], check=False).returncode == 0:
            return False
        args = ["volume", "create"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        self._run([*args, name])
        return True

    def remove_network(self, name: str) -> None:
        if self.network_exists(name):
            self._run(["network", "rm", name])

    def remove_volume(self, name: str) -> None:
        self._run(["volume", "rm", "--force", name])

    # --- images ---

    def build(self, tag: str, build: BuildSpec, *, base_dir: Path, no_cache: bool = False) -> None:
        context = (base_dir / build.context).resolve()
        args = ["build", "--tag", tag]
        if build.dockerfile:
            args += ["--file", str(context / build.dockerfile)]
        for key, value in build.args.items():
            args += ["--build-arg", f"{key}={value}"]
        if build.target:
            args += ["--target", build.target]
        if no_cache:
            args.append("--no-cache")
        self._run([*args, str(context)])

    def image_created(self, tag: str) -> datetime | None:
        proc = self._run(["image", "inspect", "--format", "{{.Created}}", tag], check=False)
        if proc.returncode != 0:
            return None
        return _parse_engine_timestamp(proc.stdout.strip())

    # --- containers ---

    def run(self, spec: RunSpec) -> str:
        proc = self._run(run_arguments(spec))
        for extra in spec.networks[1:]:
            self._run(["network", "connect", "--alias", spec.service, extra, spec.container_name])
        return proc.stdout.strip()

    def inspect(self, name: str) -> ContainerStatus | None:
        proc = self._run(["inspect", "--type", "container", "--format", "{{json .State}}", name], check=False)
        if proc.returncode != 0:
            return None
        state = json.loads(proc.stdout)
        health = (state.get("Health") or {}).get("Status")
        return ContainerStatus(
            name=name,
            state=str(state.get("Status", "unknown")),
            health=health,
            exit_code=state.get("ExitCode"),
        )

    def stop(self, name: str, *, timeout: int = 10) -> None:
        self._run(["stop", "--time", str(timeout), name])

    def remove(self, name: str) -> None:
        self._run(["rm", "--force", name])

    def logs(self, name: str, *, tail: int | None = None) -> str:
        args = ["logs"]
        if tail is not None:
            args += ["--tail", str(tail)]
        proc = self._run([*args, name])
        return proc.stdout + proc.stderr

    def exec(self, name: str, argv: list[str]) -> tuple[int, str]:
        proc = self._run(["exec", name, *argv], check=False)
        return proc.returncode, proc.stdout + proc.stderr

    def stats(self, names: list[str]) -> list[dict[str, Any]]:
        if not names:
            return []
        proc = self._run(["stats", "--no-stream", "--format", "{{json .}}", *names])
        rows: list[dict[str, Any]] = []
        for line in proc.stdout.splitlines():
            line = line.strip()
            if line:
                rows.append(json.loads(line))
        return rows


def _parse_engine_timestamp(text: str) -> datetime | None:
    """Parse RFC 3339 timestamps with nanosecond precision (``...00.123456789Z``)."""
    if not text:
        return None
    value = text.replace("Z", "+00:00")
    if "." in value:
        head, _, tail = value.partition(".")
        digits = ""
        rest = tail
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Unparseable engine timestamp: %s", text)
        return None
