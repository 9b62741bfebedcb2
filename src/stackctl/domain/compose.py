"""Composition file models.

Mirrors the subset of the compose file format used by a three-tier stack:
services with image or build recipes, published ports, environment,
``depends_on`` conditions, health checks, named volumes and networks.

Every model normalizes the alternative syntaxes the format allows (short
and long port syntax, list and mapping ``environment``, list and mapping
``depends_on``) so downstream code sees exactly one shape.
All models are frozen.
"""

from __future__ import annotations

import shlex
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from stackctl.domain.durations import parse_duration

DEFAULT_NETWORK = "default"


class DependencyCondition(StrEnum):
    """When a dependent service may start."""

    STARTED = "service_started"
    HEALTHY = "service_healthy"
    COMPLETED = "service_completed_successfully"


# ---------------------------------------------------------------------------
# Leaf models
# ---------------------------------------------------------------------------


class PortMapping(BaseModel):
    """A published (or merely exposed) container port."""

    model_config = {"frozen": True}

    target: int
    published: int | None = None
    host_ip: str | None = None
    protocol: str = "tcp"

    @classmethod
    def parse(cls, value: str | int | dict[str, Any]) -> PortMapping:
        """Parse short (``"8080:80/tcp"``) or long (mapping) port syntax."""
        if isinstance(value, dict):
            published = value.get("published")
            return cls(
                target=int(value["target"]),
                published=int(published) if published not in (None, "") else None,
                host_ip=value.get("host_ip"),
                protocol=str(value.get("protocol", "tcp")),
            )
        if isinstance(value, int):
            return cls(target=value)

        text = str(value).strip()
        protocol = "tcp"
        if "/" in text:
            text, protocol = text.rsplit("/", 1)

        host_ip: str | None = None
        if text.startswith("["):
            end = text.index("]")
            host_ip = text[1:end]
            text = text[end + 2 :]
            parts = ["", *text.split(":")] if ":" in text else ["", "", text]
        else:
            parts = text.split(":")

        if any("-" in p for p in parts):
            raise ValueError(f"Port ranges are not supported: {value!r}")

        if len(parts) == 1:
            return cls(target=int(parts[0]), protocol=protocol)
        if len(parts) == 2:
            return cls(target=int(parts[1]), published=int(parts[0]), protocol=protocol)
        if len(parts) == 3:
            ip = host_ip or parts[0] or None
            published = int(parts[1]) if parts[1] else None
            return cls(target=int(parts[2]), published=published, host_ip=ip, protocol=protocol)
        raise ValueError(f"Invalid port mapping: {value!r}")

    @property
    def binding_key(self) -> tuple[str, int, str] | None:
        """Identity of the host-side binding, or None when not published."""
        if self.published is None:
            return None
        return (self.host_ip or "0.0.0.0", self.published, self.protocol)

    def __str__(self) -> str:
        proto = "" if self.protocol == "tcp" else f"/{self.protocol}"
        if self.published is None:
            return f"{self.target}{proto}"
        prefix = f"{self.host_ip}:" if self.host_ip else ""
        return f"{prefix}{self.published}:{self.target}{proto}"


class VolumeMount(BaseModel):
    """A named-volume or bind mount attached to a service."""

    model_config = {"frozen": True}

    target: str
    source: str | None = None
    read_only: bool = False

    @classmethod
    def parse(cls, value: str | dict[str, Any]) -> VolumeMount:
        if isinstance(value, dict):
            return cls(
                source=value.get("source"),
                target=str(value["target"]),
                read_only=bool(value.get("read_only", False)),
            )
        parts = str(value).split(":")
        if len(parts) == 1:
            return cls(target=parts[0])
        mode = parts[2] if len(parts) > 2 else ""
        return cls(source=parts[0], target=parts[1], read_only="ro" in mode.split(","))

    @property
    def kind(self) -> str:
        """``volume`` for named volumes, ``bind`` for host paths, ``anonymous`` otherwise."""
        if self.source is None:
            return "anonymous"
        if self.source.startswith((".", "/", "~")):
            return "bind"
        return "volume"


class Dependency(BaseModel):
    """A ``depends_on`` entry."""

    model_config = {"frozen": True}

    condition: DependencyCondition = DependencyCondition.STARTED
    required: bool = True
    restart: bool = False


class HealthCheck(BaseModel):
    """A container health check.

    ``test`` is normalized to the list form: ``["CMD", *argv]``,
    ``["CMD-SHELL", command]`` or ``["NONE"]``. Durations are seconds.
    """

    model_config = {"frozen": True}

    test: list[str] = Field(default_factory=lambda: ["NONE"])
    interval: float = 30.0
    timeout: float = 30.0
    retries: int = 3
    start_period: float = 0.0
    disable: bool = False

    @field_validator("test", mode="before")
    @classmethod
    def _normalize_test(cls, value: Any) -> list[str]:
        if value is None:
            return ["NONE"]
        if isinstance(value, str):
            return ["CMD-SHELL", value]
        items = [str(v) for v in value]
        if not items:
            return ["NONE"]
        if items[0] not in ("CMD", "CMD-SHELL", "NONE"):
            return ["CMD", *items]
        return items

    @field_validator("interval", "timeout", "start_period", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)

    @property
    def enabled(self) -> bool:
        return not self.disable and self.test[0] != "NONE" and len(self.test) > 1

    @property
    def command(self) -> str:
        """The probe as a single shell string (``--health-cmd`` form)."""
        if not self.enabled:
            return ""
        if self.test[0] == "CMD-SHELL":
            return " ".join(self.test[1:])
        return shlex.join(self.test[1:])

    def gate_deadline(self) -> float:
        """Seconds after start at which an engine would declare the service unhealthy."""
        return self.start_period + (self.interval + self.timeout) * (self.retries + 1)


class BuildSpec(BaseModel):
    """An image build recipe."""

    model_config = {"frozen": True}

    context: str = "."
    dockerfile: str | None = None
    args: dict[str, str] = Field(default_factory=dict)
    target: str | None = None

    @field_validator("args", mode="before")
    @classmethod
    def _normalize_args(cls, value: Any) -> dict[str, str]:
        return {k: ("" if v is None else v) for k, v in normalize_environment(value).items()}


class VolumeSpec(BaseModel):
    """A top-level named volume."""

    model_config = {"frozen": True}

    driver: str | None = None
    external: bool = False
    name: str | None = None


class NetworkSpec(BaseModel):
    """A top-level network."""

    model_config = {"frozen": True}

    driver: str | None = None
    external: bool = False
    name: str | None = None
    internal: bool = False

    @property
    def effective_driver(self) -> str:
        return self.driver or "bridge"


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def normalize_environment(value: Any) -> dict[str, str | None]:
    """Normalize list (``KEY=VALUE`` / ``KEY``) or mapping environment syntax.

    ``None`` values mean "pass through from the invoking environment".
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k): (None if v is None else _scalar(v)) for k, v in value.items()}
    env: dict[str, str | None] = {}
    for item in value:
        text = str(item)
        if "=" in text:
            key, val = text.split("=", 1)
            env[key] = val
        else:
            env[text] = None
    return env


# ---------------------------------------------------------------------------
# Service and file
# ---------------------------------------------------------------------------


class Service(BaseModel):
    """One service of the composition file."""

    model_config = {"frozen": True}

    name: str = ""
    image: str | None = None
    build: BuildSpec | None = None
    container_name: str | None = None
    command: list[str] | None = None
    ports: list[PortMapping] = Field(default_factory=list)
    expose: list[int] = Field(default_factory=list)
    environment: dict[str, str | None] = Field(default_factory=dict)
    env_file: list[str] = Field(default_factory=list)
    depends_on: dict[str, Dependency] = Field(default_factory=dict)
    healthcheck: HealthCheck | None = None
    volumes: list[VolumeMount] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    restart: str | None = None

    @field_validator("build", mode="before")
    @classmethod
    def _normalize_build(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"context": value}
        return value

    @field_validator("command", mode="before")
    @classmethod
    def _normalize_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("ports", mode="before")
    @classmethod
    def _normalize_ports(cls, value: Any) -> list[PortMapping]:
        return [PortMapping.parse(v) for v in value or []]

    @field_validator("expose", mode="before")
    @classmethod
    def _normalize_expose(cls, value: Any) -> list[int]:
        return [int(str(v).split("/")[0]) for v in value or []]

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, value: Any) -> dict[str, str | None]:
        return normalize_environment(value)

    @field_validator("env_file", mode="before")
    @classmethod
    def _normalize_env_file(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [v["path"] if isinstance(v, dict) else str(v) for v in value]

    @field_validator("depends_on", mode="before")
    @classmethod
    def _normalize_depends(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): (v or {}) for k, v in value.items()}
        return {str(name): {} for name in value}

    @field_validator("volumes", mode="before")
    @classmethod
    def _normalize_volumes(cls, value: Any) -> list[VolumeMount]:
        return [VolumeMount.parse(v) for v in value or []]

    @field_validator("networks", mode="before")
    @classmethod
    def _normalize_networks(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, dict):
            return [str(k) for k in value]
        return [str(v) for v in value]

    @model_validator(mode="after")
    def _require_image_or_build(self) -> Service:
        if self.image is None and self.build is None:
            raise ValueError(f"service {self.name!r} must declare 'image' or 'build'")
        return self

    @property
    def has_healthcheck(self) -> bool:
        return self.healthcheck is not None and self.healthcheck.enabled

    def container_ports(self) -> set[int]:
        """Ports the container listens on (published targets plus ``expose``)."""
        return {p.target for p in self.ports} | set(self.expose)


class ComposeFile(BaseModel):
    """A parsed, interpolated and normalized composition file."""

    model_config = {"frozen": True}

    name: str | None = None
    services: dict[str, Service] = Field(default_factory=dict)
    volumes: dict[str, VolumeSpec] = Field(default_factory=dict)
    networks: dict[str, NetworkSpec] = Field(default_factory=dict)

    @field_validator("services", mode="before")
    @classmethod
    def _inject_names(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        named: dict[str, Any] = {}
        for name, spec in value.items():
            if spec is None:
                spec = {}
            named[name] = {**spec, "name": name} if isinstance(spec, dict) else spec
        return named

    @field_validator("volumes", "networks", mode="before")
    @classmethod
    def _empty_specs(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: (v or {}) for k, v in value.items()}
        return value

    def service(self, name: str) -> Service:
        """Return the named service or raise ``KeyError``."""
        try:
            return self.services[name]
        except KeyError:
            raise KeyError(f"Unknown service: {name}") from None

    def published_ports(self) -> list[tuple[str, PortMapping]]:
        """All ``(service, mapping)`` pairs that bind a host port."""
        return [
            (svc.name, port)
            for svc in self.services.values()
            for port in svc.ports
            if port.published is not None
        ]

    def service_networks(self, name: str) -> list[str]:
        """Networks a service joins (the implicit default network when none listed)."""
        svc = self.service(name)
        return svc.networks or [DEFAULT_NETWORK]

    def all_networks(self) -> list[str]:
        """Every network the project needs, declared or implicit."""
        used = {net for name in self.services for net in self.service_networks(name)}
        return sorted(used | set(self.networks))
