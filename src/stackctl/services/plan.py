"""PlanService — the startup plan the control loop would follow."""

from __future__ import annotations

from typing import Any

from stackctl.domain.dependencies import DependencyCycleError
from stackctl.services.base import BaseService
from stackctl.services.orchestrate import gate_timeout
from stackctl.services.result import ServiceResult
from stackctl.services.telemetry import traced


class PlanService(BaseService):
    """Explain startup order and gating without starting anything."""

    @traced
    def plan(self, services: list[str] | None = None) -> ServiceResult:
        """Startup generations, shutdown order and per-service gates."""
        if (failed := self._load_failure("plan")) is not None:
            return failed

        graph = self._project.graph
        compose = self._project.compose
        wait_override = self._project.settings.orchestrator.wait_timeout
        try:
            selected = graph.select(services)
            generations = graph.startup_order(selected)
            shutdown = graph.shutdown_order(selected)
        except (DependencyCycleError, KeyError) as exc:
            return self._error_result("plan", exc)

        gates: list[dict[str, Any]] = []
        for step, generation in enumerate(generations, start=1):
            for name in generation:
                svc = compose.service(name)
                hc = svc.healthcheck if svc.has_healthcheck else None
                gate: dict[str, Any] = {
                    "service": name,
                    "step": step,
                    "waits_for": {dep: str(cond) for dep, cond in graph.direct_dependencies(name).items()},
                    "gate": "health" if hc is not None else "running",
                }
                gate["deadline_seconds"] = gate_timeout(svc, wait_override)
                if hc is not None:
                    gate["healthcheck"] = hc.command
                if svc.build is not None:
                    gate["build"] = svc.build.context
                gates.append(gate)

        warnings = [f"depends_on references undeclared service {dep!r} (from {svc!r})" for svc, dep in graph.unknown]
        return ServiceResult(
            ok=True,
            op="plan",
            data={
                "project": self._project.name,
                "generations": generations,
                "shutdown_order": shutdown,
                "services": gates,
                "count": len(selected),
            },
            warnings=warnings,
        )
