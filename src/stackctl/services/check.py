"""CheckService — static consistency lint for a three-tier stack.

Single command following the linter pattern. Each rule inspects the
composition file and the proxy configuration without contacting the
engine. Rules are grouped into categories for display:

* service_connection — names one container uses to reach another
* startup_ordering — depends_on references, cycles, health gating
* port_allocation — host port collisions
* networking / storage — references to declared networks and volumes
* environment — backend datasource variables
* proxy_routing — static fallback and proxy syntax
* roles / build — role services exist, build contexts exist
"""

from __future__ import annotations

from itertools import combinations
from typing import TYPE_CHECKING, Any

from stackctl.domain.compose import DependencyCondition
from stackctl.domain.datasource import parse_datasource
from stackctl.domain.proxy import ProxyConfigError
from stackctl.services.base import BaseService
from stackctl.services.result import ErrorCode, ServiceResult
from stackctl.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from stackctl.domain.compose import ComposeFile, PortMapping
    from stackctl.domain.proxy import ProxyConfig


SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

_SEVERITY_RANK = {SEVERITY_WARNING: 0, SEVERITY_ERROR: 1}

RULE_CATEGORIES: dict[str, str] = {
    "proxy-upstream": "service_connection",
    "datasource-host": "service_connection",
    "health-gating": "startup_ordering",
    "dependency-reference": "startup_ordering",
    "dependency-cycle": "startup_ordering",
    "unique-host-ports": "port_allocation",
    "network-reference": "networking",
    "bridge-network": "networking",
    "volume-reference": "storage",
    "backend-env": "environment",
    "spa-fallback": "proxy_routing",
    "proxy-syntax": "proxy_routing",
    "role-reference": "roles",
    "build-context": "build",
}

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})
_WILDCARD_IPS = frozenset({"0.0.0.0", "::", ""})
_BOOLEAN_LITERALS = frozenset({"true", "false"})


def _issue(rule: str, severity: str, message: str, service: str | None = None) -> dict[str, Any]:
    return {
        "rule": rule,
        "category": RULE_CATEGORIES[rule],
        "severity": severity,
        "service": service,
        "message": message,
    }


def _ports_collide(a: PortMapping, b: PortMapping) -> bool:
    if a.published != b.published or a.protocol != b.protocol:
        return False
    ip_a = a.host_ip or ""
    ip_b = b.host_ip or ""
    return ip_a == ip_b or ip_a in _WILDCARD_IPS or ip_b in _WILDCARD_IPS


class CheckService(BaseService):
    """Consistency checks over the declared stack configuration."""

    @traced
    def check(self, *, min_severity: str = SEVERITY_WARNING, strict: bool = False) -> ServiceResult:
        """Report consistency issues without touching the engine.

        With *strict*, any remaining error makes the result fail with
        ``LINT_FAILED`` (useful in CI).
        """
        if (failed := self._load_failure("check")) is not None:
            return failed

        compose = self._project.compose
        warnings: list[str] = []
        issues: list[dict[str, Any]] = []

        with trace_span("roles"):
            issues.extend(self._check_roles(compose))
        with trace_span("startup_ordering"):
            issues.extend(self._check_dependencies(compose))
            issues.extend(self._check_health_gating(compose))
        with trace_span("service_connection"):
            issues.extend(self._check_datasource(compose))
        with trace_span("port_allocation"):
            issues.extend(self._check_ports(compose))
        with trace_span("networking"):
            issues.extend(self._check_networks(compose))
            issues.extend(self._check_volumes(compose))
        with trace_span("environment"):
            issues.extend(self._check_backend_env(compose))
        with trace_span("build"):
            issues.extend(self._check_build_contexts(compose))
        with trace_span("proxy_routing"):
            try:
                proxy = self._project.proxy
            except ProxyConfigError as exc:
                proxy = None
                issues.append(_issue("proxy-syntax", SEVERITY_ERROR, str(exc)))
            else:
                if proxy is None:
                    warnings.append(
                        f"Proxy configuration not found at {self._project.proxy_path}; proxy rules skipped"
                    )
            if proxy is not None:
                issues.extend(self._check_proxy(compose, proxy))

        threshold = _SEVERITY_RANK.get(min_severity, 0)
        visible = [i for i in issues if _SEVERITY_RANK[i["severity"]] >= threshold]
        errors = sum(1 for i in visible if i["severity"] == SEVERITY_ERROR)
        warning_count = len(visible) - errors

        self._dispatch_event(
            "post_check",
            {"errors": errors, "warnings": warning_count, "issues": visible},
            warnings,
        )
        self._drain_events(warnings)

        data = {
            "issues": visible,
            "count": len(visible),
            "error_count": errors,
            "warning_count": warning_count,
            "healthy": errors == 0,
        }
        if strict and errors:
            return ServiceResult.failure(
                "check",
                ErrorCode.LINT_FAILED,
                f"{errors} consistency error(s) found",
                data=data,
                warnings=warnings,
            )
        return ServiceResult(ok=True, op="check", data=data, warnings=warnings)

    def connection_issues(self) -> list[dict[str, Any]]:
        """Issues from the rules that verify containers reach each other by name."""
        compose = self._project.compose
        issues = self._check_datasource(compose)
        try:
            proxy = self._project.proxy
        except ProxyConfigError as exc:
            return [*issues, _issue("proxy-syntax", SEVERITY_ERROR, str(exc))]
        if proxy is not None:
            issues.extend(i for i in self._check_proxy(compose, proxy) if i["rule"] == "proxy-upstream")
        return issues

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _check_roles(self, compose: ComposeFile) -> list[dict[str, Any]]:
        roles = self._project.settings.roles
        issues: list[dict[str, Any]] = []
        for role, name in (("database", roles.database), ("backend", roles.backend), ("frontend", roles.frontend)):
            if name not in compose.services:
                issues.append(
                    _issue(
                        "role-reference",
                        SEVERITY_WARNING,
                        f"The {role} role names service {name!r}, which is not declared; "
                        f"rules for that role are skipped",
                    )
                )
        return issues

    def _check_dependencies(self, compose: ComposeFile) -> list[dict[str, Any]]:
        graph = self._project.graph
        issues = [
            _issue(
                "dependency-reference",
                SEVERITY_ERROR,
                f"depends_on references undeclared service {dep!r}",
                service,
            )
            for service, dep in graph.unknown
        ]
        cycle = graph.find_cycle()
        if cycle is not None:
            path = " -> ".join([*cycle, cycle[0]])
            issues.append(_issue("dependency-cycle", SEVERITY_ERROR, f"Dependency cycle: {path}", cycle[0]))
        return issues

    def _check_health_gating(self, compose: ComposeFile) -> list[dict[str, Any]]:
        roles = self._project.settings.roles
        issues: list[dict[str, Any]] = []

        for svc in compose.services.values():
            for dep, spec in svc.depends_on.items():
                target = compose.services.get(dep)
                if target is None or spec.condition != DependencyCondition.HEALTHY:
                    continue
                if not target.has_healthcheck:
                    issues.append(
                        _issue(
                            "health-gating",
                            SEVERITY_ERROR,
                            f"Waits for {dep!r} to be healthy, but {dep!r} declares no health check",
                            svc.name,
                        )
                    )

        backend = compose.services.get(roles.backend)
        database = compose.services.get(roles.database)
        if backend is None or database is None:
            return issues

        dep = backend.depends_on.get(database.name)
        if dep is None:
            issues.append(
                _issue(
                    "health-gating",
                    SEVERITY_ERROR,
                    f"Backend does not depend on database {database.name!r}; it may start before "
                    f"the database accepts connections",
                    backend.name,
                )
            )
        elif dep.condition != DependencyCondition.HEALTHY:
            issues.append(
                _issue(
                    "health-gating",
                    SEVERITY_ERROR,
                    f"Backend waits for {database.name!r} with condition {dep.condition.value!r}; "
                    f"use 'service_healthy'",
                    backend.name,
                )
            )

        if not database.has_healthcheck and (dep is None or dep.condition != DependencyCondition.HEALTHY):
            issues.append(
                _issue(
                    "health-gating",
                    SEVERITY_ERROR,
                    "Database declares no health check, so readiness cannot gate the backend",
                    database.name,
                )
            )
        return issues

    def _check_datasource(self, compose: ComposeFile) -> list[dict[str, Any]]:
        roles = self._project.settings.roles
        backend = compose.services.get(roles.backend)
        database = compose.services.get(roles.database)
        if backend is None:
            return []

        var = roles.datasource.url
        if var not in backend.environment:
            return []  # reported by backend-env
        url = backend.environment[var]
        if not url:
            return [
                _issue(
                    "datasource-host",
                    SEVERITY_WARNING,
                    f"{var} has no value in the composition file; its host cannot be verified",
                    backend.name,
                )
            ]
        try:
            ds = parse_datasource(url)
        except ValueError as exc:
            return [_issue("datasource-host", SEVERITY_ERROR, f"{var}: {exc}", backend.name)]

        if database is None:
            return []
        issues: list[dict[str, Any]] = []
        if ds.host != database.name:
            hint = " (localhost inside a container is the container itself)" if ds.host in _LOCAL_HOSTS else ""
            issues.append(
                _issue(
                    "datasource-host",
                    SEVERITY_ERROR,
                    f"Datasource host {ds.host!r} does not match database service {database.name!r}{hint}",
                    backend.name,
                )
            )
        listening = database.container_ports()
        port = ds.effective_port
        if listening and port is not None and port not in listening:
            ports = ", ".join(str(p) for p in sorted(listening))
            issues.append(
                _issue(
                    "datasource-host",
                    SEVERITY_ERROR,
                    f"Datasource port {port} is not a port {database.name!r} listens on ({ports})",
                    backend.name,
                )
            )
        return issues

    def _check_ports(self, compose: ComposeFile) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        reported: set[tuple[str, str, int]] = set()
        for (svc_a, port_a), (svc_b, port_b) in combinations(compose.published_ports(), 2):
            if not _ports_collide(port_a, port_b):
                continue
            assert port_b.published is not None
            key = (svc_a, svc_b, port_b.published)
            if key in reported:
                continue
            reported.add(key)
            owner = "the same service twice" if svc_a == svc_b else f"both {svc_a!r} and {svc_b!r}"
            issues.append(
                _issue(
                    "unique-host-ports",
                    SEVERITY_ERROR,
                    f"Host port {port_b.published}/{port_b.protocol} is published by {owner}",
                    svc_b,
                )
            )
        return issues

    def _check_networks(self, compose: ComposeFile) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for svc in compose.services.values():
            for net in svc.networks:
                if net not in compose.networks:
                    issues.append(
                        _issue("network-reference", SEVERITY_ERROR, f"Joins undeclared network {net!r}", svc.name)
                    )
        for name, spec in compose.networks.items():
            if not spec.external and spec.effective_driver != "bridge":
                issues.append(
                    _issue(
                        "bridge-network",
                        SEVERITY_WARNING,
                        f"Network {name!r} uses driver {spec.effective_driver!r}; single-host stacks "
                        f"resolve service names on a bridge network",
                    )
                )
        return issues

    def _check_volumes(self, compose: ComposeFile) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for svc in compose.services.values():
            for mount in svc.volumes:
                if mount.kind == "volume" and mount.source not in compose.volumes:
                    issues.append(
                        _issue(
                            "volume-reference",
                            SEVERITY_ERROR,
                            f"Mounts undeclared named volume {mount.source!r}",
                            svc.name,
                        )
                    )
        return issues

    def _check_backend_env(self, compose: ComposeFile) -> list[dict[str, Any]]:
        roles = self._project.settings.roles
        backend = compose.services.get(roles.backend)
        if backend is None:
            return []
        issues: list[dict[str, Any]] = []
        missing = [name for name in roles.datasource.names() if name not in backend.environment]
        if missing:
            issues.append(
                _issue(
                    "backend-env",
                    SEVERITY_WARNING,
                    f"Backend environment is missing {', '.join(missing)}",
                    backend.name,
                )
            )
        show_sql = backend.environment.get(roles.datasource.sql_logging)
        if show_sql is not None and show_sql.lower() not in _BOOLEAN_LITERALS:
            issues.append(
                _issue(
                    "backend-env",
                    SEVERITY_WARNING,
                    f"{roles.datasource.sql_logging} should be 'true' or 'false', got {show_sql!r}",
                    backend.name,
                )
            )
        return issues

    def _check_build_contexts(self, compose: ComposeFile) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        base = self._project.compose_dir
        for svc in compose.services.values():
            if svc.build is None:
                continue
            context = base / svc.build.context
            if not context.is_dir():
                issues.append(
                    _issue(
                        "build-context",
                        SEVERITY_WARNING,
                        f"Build context {svc.build.context!r} does not exist",
                        svc.name,
                    )
                )
                continue
            dockerfile = context / (svc.build.dockerfile or "Dockerfile")
            if not dockerfile.is_file():
                shown = dockerfile.relative_to(base) if dockerfile.is_relative_to(base) else dockerfile
                issues.append(
                    _issue(
                        "build-context",
                        SEVERITY_WARNING,
                        f"Build recipe {shown} does not exist",
                        svc.name,
                    )
                )
        return issues

    def _check_proxy(self, compose: ComposeFile, proxy: ProxyConfig) -> list[dict[str, Any]]:
        roles = self._project.settings.roles
        frontend = roles.frontend if roles.frontend in compose.services else None
        issues: list[dict[str, Any]] = []

        for loc, host, port in proxy.upstream_targets():
            target = compose.services.get(host)
            if target is None:
                if host in _LOCAL_HOSTS:
                    continue
                issues.append(
                    _issue(
                        "proxy-upstream",
                        SEVERITY_ERROR,
                        f"Location {loc.path!r} forwards to {host!r}, which is not a declared service",
                        frontend,
                    )
                )
                continue
            listening = target.container_ports()
            if port is not None and listening and port not in listening:
                issues.append(
                    _issue(
                        "proxy-upstream",
                        SEVERITY_WARNING,
                        f"Location {loc.path!r} forwards to {host}:{port}, but {host!r} declares "
                        f"ports {', '.join(str(p) for p in sorted(listening))}",
                        frontend,
                    )
                )

        if roles.backend in compose.services and proxy.servers:
            routed = [server.route(roles.api_prefix) for server in proxy.servers]
            upstreams = [loc.upstream() for loc in routed if loc is not None and loc.proxy_pass]
            if not upstreams:
                issues.append(
                    _issue(
                        "proxy-upstream",
                        SEVERITY_ERROR,
                        f"No location forwards {roles.api_prefix!r} to the backend",
                        frontend,
                    )
                )
            else:
                hosts = {self._resolve_upstream_host(proxy, up[0]) for up in upstreams if up is not None}
                if roles.backend not in hosts:
                    got = ", ".join(sorted(h for h in hosts if h))
                    issues.append(
                        _issue(
                            "proxy-upstream",
                            SEVERITY_ERROR,
                            f"{roles.api_prefix!r} is forwarded to {got!r}, expected backend service "
                            f"{roles.backend!r}",
                            frontend,
                        )
                    )

        if proxy.servers:
            root_loc = proxy.servers[0].route("/")
            if root_loc is not None and root_loc.proxy_pass is None and not root_loc.spa_fallback:
                issues.append(
                    _issue(
                        "spa-fallback",
                        SEVERITY_WARNING,
                        "Location '/' has no try_files fallback to /index.html; client-side routes "
                        "will return 404 on reload",
                        frontend,
                    )
                )
        return issues

    @staticmethod
    def _resolve_upstream_host(proxy: ProxyConfig, host: str) -> str:
        """Map an ``upstream`` block name to the host of its first member."""
        members = proxy.upstreams.get(host)
        if members:
            return members[0].partition(":")[0]
        return host
