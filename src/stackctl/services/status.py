"""StatusService — inspection commands over a (possibly running) stack.

``ps``, ``logs``, ``exec`` and ``stats`` ask the engine; ``config`` and
``env`` only read the composition file.
"""

from __future__ import annotations

from typing import Any

from stackctl.domain.datasource import parse_datasource
from stackctl.infrastructure.loader import load_env_file
from stackctl.infrastructure.runtime import RuntimeCommandError, container_name
from stackctl.services._helpers import is_secret_name, mask_value
from stackctl.services.base import BaseService
from stackctl.services.result import ErrorCode, ServiceResult
from stackctl.services.telemetry import traced

NOT_CREATED = "not created"


class StatusService(BaseService):
    """Read-only views of the stack."""

    def _runtime_failure(self, op: str) -> ServiceResult | None:
        if (failed := self._load_failure(op)) is not None:
            return failed
        if not self._project.runtime.available():
            engine = self._project.settings.runtime.engine
            return ServiceResult.failure(
                op,
                ErrorCode.RUNTIME_UNAVAILABLE,
                f"Container engine {engine!r} is not available",
                engine=engine,
            )
        return None

    def _container(self, service: str) -> str:
        return container_name(self._project.name, self._project.compose.service(service))

    @traced
    def ps(self) -> ServiceResult:
        """One row per declared service with its container state."""
        if (failed := self._runtime_failure("ps")) is not None:
            return failed
        compose = self._project.compose
        runtime = self._project.runtime
        rows: list[dict[str, Any]] = []
        try:
            for name in sorted(compose.services):
                svc = compose.services[name]
                cname = self._container(name)
                status = runtime.inspect(cname)
                rows.append(
                    {
                        "service": name,
                        "container": cname,
                        "state": status.state if status else NOT_CREATED,
                        "health": status.health if status else None,
                        "exit_code": status.exit_code if status and not status.running else None,
                        "ports": [str(p) for p in svc.ports if p.published is not None],
                    }
                )
        except RuntimeCommandError as exc:
            return self._error_result("ps", exc)
        running = sum(1 for r in rows if r["state"] == "running")
        return ServiceResult(
            ok=True,
            op="ps",
            data={"project": self._project.name, "items": rows, "count": len(rows), "running": running},
        )

    @traced
    def logs(self, service: str, *, tail: int | None = None) -> ServiceResult:
        if (failed := self._runtime_failure("logs")) is not None:
            return failed
        try:
            cname = self._container(service)
            if self._project.runtime.inspect(cname) is None:
                return ServiceResult.failure(
                    "logs",
                    ErrorCode.RUNTIME_ERROR,
                    f"Container {cname} has not been created",
                    service=service,
                )
            output = self._project.runtime.logs(cname, tail=tail)
        except (KeyError, RuntimeCommandError) as exc:
            return self._error_result("logs", exc)
        return ServiceResult(
            ok=True,
            op="logs",
            data={"service": service, "container": cname, "output": output},
        )

    @traced
    def exec(self, service: str, argv: list[str]) -> ServiceResult:
        """Run *argv* in the service container.

        A non-zero exit code is still a successful operation; callers read
        ``data["exit_code"]``.
        """
        if (failed := self._runtime_failure("exec")) is not None:
            return failed
        try:
            cname = self._container(service)
            status = self._project.runtime.inspect(cname)
            if status is None or not status.running:
                return ServiceResult.failure(
                    "exec",
                    ErrorCode.RUNTIME_ERROR,
                    f"Container {cname} is not running",
                    service=service,
                )
            code, output = self._project.runtime.exec(cname, argv)
        except (KeyError, RuntimeCommandError) as exc:
            return self._error_result("exec", exc)
        return ServiceResult(
            ok=True,
            op="exec",
            data={
                "service": service,
                "container": cname,
                "command": argv,
                "exit_code": code,
                "output": output,
            },
        )

    @traced
    def stats(self) -> ServiceResult:
        """Resource usage of running project containers."""
        if (failed := self._runtime_failure("stats")) is not None:
            return failed
        runtime = self._project.runtime
        try:
            names = []
            for name in sorted(self._project.compose.services):
                cname = self._container(name)
                status = runtime.inspect(cname)
                if status is not None and status.running:
                    names.append(cname)
            rows = runtime.stats(names)
        except RuntimeCommandError as exc:
            return self._error_result("stats", exc)
        warnings = [] if names else ["No project containers are running"]
        return ServiceResult(
            ok=True,
            op="stats",
            data={"items": rows, "count": len(rows)},
            warnings=warnings,
        )

    @traced
    def config(self) -> ServiceResult:
        """The interpolated composition file, as the engine would see it."""
        if (failed := self._load_failure("config")) is not None:
            return failed
        loaded = self._project.loaded
        missing = sorted(loaded.missing_variables)
        warnings = [f"Variable {var} is not set; substituted an empty string" for var in missing]
        return ServiceResult(
            ok=True,
            op="config",
            data={
                "project": self._project.name,
                "path": str(loaded.path),
                "services": sorted(loaded.compose.services),
                "compose": loaded.raw,
                "missing_variables": missing,
            },
            warnings=warnings,
        )

    @traced
    def env(self, service: str, *, show_secrets: bool = False) -> ServiceResult:
        """A service's resolved environment with secret values masked.

        ``env_file`` entries are applied first and ``environment`` overrides
        them. Variables listed without a value are inherited from the host
        and reported as ``None``.
        """
        if (failed := self._load_failure("env")) is not None:
            return failed
        try:
            svc = self._project.compose.service(service)
        except KeyError as exc:
            return self._error_result("env", exc)

        warnings: list[str] = []
        resolved: dict[str, str | None] = {}
        for env_file in svc.env_file:
            path = self._project.compose_dir / env_file
            if not path.is_file():
                warnings.append(f"env_file {env_file} does not exist")
                continue
            resolved.update(load_env_file(path))
        resolved.update(svc.environment)

        masked = sorted(k for k in resolved if is_secret_name(k))
        shown = {
            k: (v if show_secrets or k not in masked else mask_value(v))
            for k, v in sorted(resolved.items())
        }

        datasource: dict[str, Any] | None = None
        roles = self._project.settings.roles
        url = resolved.get(roles.datasource.url)
        if service == roles.backend and url:
            try:
                ds = parse_datasource(url)
            except ValueError as exc:
                warnings.append(f"{roles.datasource.url}: {exc}")
            else:
                datasource = {**ds.model_dump(), "port": ds.effective_port}

        return ServiceResult(
            ok=True,
            op="env",
            data={
                "service": service,
                "environment": shown,
                "masked": [] if show_secrets else masked,
                "datasource": datasource,
            },
            warnings=warnings,
        )
