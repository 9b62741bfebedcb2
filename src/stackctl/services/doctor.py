"""DoctorService — troubleshooting diagnostics for the usual failure modes.

Each diagnostic names the *symptom* a user would observe, a *status*
(``ok``, ``warning`` or ``error``), what was found (*detail*) and what to
do about it (*remedy*). Diagnostics that need the engine degrade to a
``warning`` when it is unavailable.
"""

from __future__ import annotations

import re
import socket
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx

from stackctl.infrastructure.runtime import RuntimeCommandError, container_name, image_tag
from stackctl.services.base import BaseService
from stackctl.services.check import SEVERITY_ERROR, CheckService
from stackctl.services.result import ServiceResult
from stackctl.services.telemetry import trace_span, traced

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"

DIAGNOSTICS: tuple[str, ...] = ("engine", "port-conflict", "service-connection", "network", "stale-build")

_SKIPPED_DIRS = frozenset({".git", "node_modules", ".stackctl"})

# http://localhost:8080/actuator/health inside a health-check command
_HEALTH_URL_RE = re.compile(r"https?://(?:localhost|127\.0\.0\.1|0\.0\.0\.0)(?::(?P<port>\d+))?(?P<path>/[^\s'\"]*)?")

PortProbe = Callable[[str, int, str], bool]


def port_is_free(host: str, port: int, protocol: str = "tcp") -> bool:
    """Whether *port* can be bound on *host* right now."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    kind = socket.SOCK_DGRAM if protocol == "udp" else socket.SOCK_STREAM
    with socket.socket(family, kind) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def _diagnostic(name: str, symptom: str, status: str, detail: str, remedy: str = "", **extra: Any) -> dict[str, Any]:
    return {"name": name, "symptom": symptom, "status": status, "detail": detail, "remedy": remedy, **extra}


class DoctorService(BaseService):
    """Diagnose engine, port, name resolution, network and build problems.

    *port_probe* and *transport* replace the real socket bind and HTTP
    transport in tests.
    """

    def __init__(
        self,
        project: Any,
        *,
        port_probe: PortProbe = port_is_free,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(project)
        self._port_probe = port_probe
        self._transport = transport
        self._engine_ok: bool | None = None

    @traced
    def doctor(self, only: list[str] | None = None) -> ServiceResult:
        """Run the selected diagnostics (default: all)."""
        if (failed := self._load_failure("doctor")) is not None:
            return failed

        selected = [d for d in DIAGNOSTICS if not only or d in only]
        warnings = [f"Unknown diagnostic {name!r}" for name in (only or []) if name not in DIAGNOSTICS]
        runners = {
            "engine": self._engine,
            "port-conflict": self._port_conflict,
            "service-connection": self._service_connection,
            "network": self._network,
            "stale-build": self._stale_build,
        }
        diagnostics: list[dict[str, Any]] = []
        for name in selected:
            with trace_span(name):
                try:
                    diagnostics.append(runners[name]())
                except RuntimeCommandError as exc:
                    diagnostics.append(
                        _diagnostic(name, "", STATUS_ERROR, f"Engine command failed: {exc}", "Re-run with -v")
                    )

        errors = sum(1 for d in diagnostics if d["status"] == STATUS_ERROR)
        warning_count = sum(1 for d in diagnostics if d["status"] == STATUS_WARNING)
        return ServiceResult(
            ok=True,
            op="doctor",
            data={
                "project": self._project.name,
                "diagnostics": diagnostics,
                "error_count": errors,
                "warning_count": warning_count,
                "healthy": errors == 0,
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _engine_available(self) -> bool:
        if self._engine_ok is None:
            self._engine_ok = self._project.runtime.available()
        return self._engine_ok

    def _skipped(self, name: str, symptom: str) -> dict[str, Any]:
        return _diagnostic(
            name,
            symptom,
            STATUS_WARNING,
            "Skipped: the container engine is not available",
            "Fix the 'engine' diagnostic first",
        )

    def _engine(self) -> dict[str, Any]:
        engine = self._project.settings.runtime.engine
        symptom = "Every command fails with 'cannot connect to the engine'"
        if self._engine_available():
            return _diagnostic("engine", symptom, STATUS_OK, f"{engine} responds")
        return _diagnostic(
            "engine",
            symptom,
            STATUS_ERROR,
            f"{engine} is not installed or its daemon is not running",
            f"Start the {engine} daemon, or set [runtime] engine in stackctl.toml",
        )

    def _port_conflict(self) -> dict[str, Any]:
        compose = self._project.compose
        runtime = self._project.runtime
        symptom = "A container fails to start with 'port is already allocated'"
        engine_ok = self._engine_available()

        conflicts: list[str] = []
        checked = 0
        for service, port in compose.published_ports():
            assert port.published is not None
            if engine_ok:
                status = runtime.inspect(container_name(self._project.name, compose.service(service)))
                if status is not None and status.running:
                    continue  # held by our own container
            checked += 1
            host = port.host_ip or "0.0.0.0"
            if not self._port_probe(host, port.published, port.protocol):
                conflicts.append(f"{service}: {host}:{port.published}/{port.protocol} is in use")

        if conflicts:
            return _diagnostic(
                "port-conflict",
                symptom,
                STATUS_ERROR,
                "; ".join(conflicts),
                "Stop the process holding the port, or publish the service on a different host port",
                conflicts=conflicts,
            )
        return _diagnostic("port-conflict", symptom, STATUS_OK, f"{checked} published port(s) are free")

    def _service_connection(self) -> dict[str, Any]:
        symptom = "The backend cannot reach the database, or the proxy answers 502 Bad Gateway"
        issues = CheckService(self._project).connection_issues()
        if not issues:
            return _diagnostic(
                "service-connection", symptom, STATUS_OK, "Connection strings and proxy targets use service names"
            )
        status = STATUS_ERROR if any(i["severity"] == SEVERITY_ERROR for i in issues) else STATUS_WARNING
        return _diagnostic(
            "service-connection",
            symptom,
            status,
            "; ".join(i["message"] for i in issues),
            "Address other containers by service name on the shared network; inside a container "
            "'localhost' is the container itself",
            issues=issues,
        )

    def _network(self) -> dict[str, Any]:
        symptom = "Services cannot resolve each other by name"
        if not self._engine_available():
            return self._skipped("network", symptom)

        compose = self._project.compose
        runtime = self._project.runtime
        problems: list[str] = []
        running: dict[str, str] = {}
        for name in sorted(compose.services):
            cname = container_name(self._project.name, compose.services[name])
            status = runtime.inspect(cname)
            if status is not None and status.running:
                running[name] = cname

        for net in compose.all_networks():
            net_name = self._project.network_name(net)
            if not runtime.network_exists(net_name):
                if any(net in compose.service_networks(svc) for svc in running):
                    problems.append(f"network {net_name} does not exist")
                continue
            members = set(runtime.network_members(net_name))
            for svc, cname in running.items():
                if net in compose.service_networks(svc) and cname not in members:
                    problems.append(f"{cname} is not attached to {net_name}")

        probes = self._probe_http(running) if self._project.settings.doctor.probe_http else []
        failed_probes = [p for p in probes if not p["ok"]]

        if problems:
            status = STATUS_ERROR
            detail = "; ".join(problems)
        elif failed_probes:
            status = STATUS_WARNING
            detail = "; ".join(f"{p['url']}: {p['detail']}" for p in failed_probes)
        elif not running:
            status = STATUS_OK
            detail = "No project containers are running"
        else:
            status = STATUS_OK
            detail = f"{len(running)} running container(s) share their declared networks"
        return _diagnostic(
            "network",
            symptom,
            status,
            detail,
            "" if status == STATUS_OK else "Run 'stackctl down' then 'stackctl up' to recreate the network",
            probes=probes,
        )

    def _probe_http(self, running: dict[str, str]) -> list[dict[str, Any]]:
        """GET published HTTP health endpoints named in health-check commands."""
        compose = self._project.compose
        timeout = self._project.settings.doctor.probe_timeout
        targets: list[tuple[str, str]] = []
        for name in running:
            svc = compose.services[name]
            if not svc.has_healthcheck:
                continue
            assert svc.healthcheck is not None
            match = _HEALTH_URL_RE.search(svc.healthcheck.command)
            if match is None:
                continue
            inner = int(match.group("port") or 80)
            published = next(
                (p.published for p in svc.ports if p.target == inner and p.published is not None),
                None,
            )
            if published is None:
                continue
            targets.append((name, f"http://127.0.0.1:{published}{match.group('path') or '/'}"))

        if not targets:
            return []
        results: list[dict[str, Any]] = []
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            for service, url in targets:
                try:
                    resp = client.get(url)
                    resp.raise_for_status()
                except httpx.HTTPError as exc:
                    results.append({"service": service, "url": url, "ok": False, "detail": str(exc) or type(exc).__name__})
                else:
                    results.append({"service": service, "url": url, "ok": True, "detail": str(resp.status_code)})
        return results

    def _stale_build(self) -> dict[str, Any]:
        symptom = "Code changes do not show up in the running container"
        if not self._engine_available():
            return self._skipped("stale-build", symptom)

        compose = self._project.compose
        runtime = self._project.runtime
        stale: list[dict[str, Any]] = []
        unbuilt: list[str] = []
        for name in sorted(compose.services):
            svc = compose.services[name]
            if svc.build is None:
                continue
            created = runtime.image_created(image_tag(self._project.name, svc))
            if created is None:
                unbuilt.append(name)
                continue
            if created.tzinfo is None:
                created = created.replace(tzinfo=UTC)
            newer = _files_newer_than(self._project.compose_dir / svc.build.context, created)
            if newer:
                stale.append({"service": name, "files": newer[:5], "changed": len(newer)})

        if stale:
            names = " ".join(s["service"] for s in stale)
            return _diagnostic(
                "stale-build",
                symptom,
                STATUS_WARNING,
                "; ".join(f"{s['service']}: {s['changed']} file(s) changed since the image was built" for s in stale),
                f"Rebuild without cache: stackctl build --no-cache {names}",
                stale=stale,
                unbuilt=unbuilt,
            )
        if unbuilt:
            return _diagnostic(
                "stale-build",
                symptom,
                STATUS_WARNING,
                f"Not built yet: {', '.join(unbuilt)}",
                "Run 'stackctl build'",
                stale=[],
                unbuilt=unbuilt,
            )
        return _diagnostic("stale-build", symptom, STATUS_OK, "Images are newer than their build contexts")


def _files_newer_than(context: Path, created: datetime) -> list[str]:
    """Files under *context* modified after *created*, newest first."""
    if not context.is_dir():
        return []
    threshold = created.timestamp()
    newer: list[tuple[float, str]] = []
    for path in context.rglob("*"):
        if any(part in _SKIPPED_DIRS for part in path.relative_to(context).parts):
            continue
        if not path.is_file():
            continue
        mtime = path.stat().st_mtime
        if mtime > threshold:
            newer.append((mtime, path.relative_to(context).as_posix()))
    return [rel for _, rel in sorted(newer, reverse=True)]
