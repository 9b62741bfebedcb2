"""OrchestrationService — the health-gated startup control loop.

``up`` walks the dependency graph one generation at a time. Services in a
generation start concurrently; each one first checks that its
dependencies satisfy their ``depends_on`` condition, then starts its
container and waits at its *gate*:

* with a health check: until the engine reports ``healthy`` or
  ``unhealthy``, or the deadline
  ``start_period + (interval + timeout) * (retries + 1)`` passes;
* without one: until the container is running (or, when a dependent
  waits for ``service_completed_successfully``, until it exits).

A service whose required dependency never became ready is ``skipped``
rather than started into a broken environment.

``down`` stops and removes containers in reverse dependency order, then
removes project networks (and named volumes on request).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any

import structlog

from stackctl.domain.compose import DependencyCondition
from stackctl.domain.dependencies import DependencyCycleError
from stackctl.domain.lifecycle import (
    FAILURE_STATES,
    ServiceState,
    condition_satisfied,
    is_valid_transition,
)
from stackctl.infrastructure.runtime import (
    LABEL_PROJECT,
    RuntimeCommandError,
    build_run_spec,
    container_name,
    image_tag,
)
from stackctl.services.base import BaseService
from stackctl.services.result import ErrorCode, ServiceResult
from stackctl.services.telemetry import run_in_context, trace_span, traced

if TYPE_CHECKING:
    from stackctl.domain.compose import Service

log = structlog.get_logger(__name__)

# Gate deadline for services without a health check.
DEFAULT_START_TIMEOUT = 60.0

_EXITED_STATES = frozenset({"exited", "dead"})


def gate_timeout(service: Service, override: float | None = None) -> float:
    """Seconds the gate of *service* waits; *override* replaces every deadline."""
    if override is not None:
        return override
    hc = service.healthcheck if service.has_healthcheck else None
    return hc.gate_deadline() if hc is not None else DEFAULT_START_TIMEOUT


@dataclass
class ServiceRecord:
    """Progress of one service through the control loop."""

    name: str
    state: ServiceState = ServiceState.PENDING
    container: str = ""
    exit_code: int | None = None
    reason: str | None = None
    waited_seconds: float = 0.0
    reused: bool = False

    def transition(self, target: ServiceState, *, reason: str | None = None) -> None:
        if not is_valid_transition(self.state, target):
            raise ValueError(f"{self.name}: invalid transition {self.state} -> {target}")
        self.state = target
        if reason is not None:
            self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "service": self.name,
            "state": str(self.state),
            "container": self.container,
            "waited_seconds": round(self.waited_seconds, 3),
        }
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        if self.reason:
            result["reason"] = self.reason
        if self.reused:
            result["reused"] = True
        return result


class OrchestrationService(BaseService):
    """Bring a stack up and down through the container runtime.

    *clock* and *sleep* are injectable so gates can be tested without
    waiting in real time.
    """

    def __init__(
        self,
        project: Any,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(project)
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def up(
        self,
        services: list[str] | None = None,
        *,
        build: bool = False,
        no_cache: bool = False,
        wait_timeout: float | None = None,
    ) -> ServiceResult:
        """Start *services* (default: all) plus their dependencies, gated by health."""
        if (failed := self._load_failure("up")) is not None:
            return failed
        if not self._project.runtime.available():
            return self._unavailable("up")

        graph = self._project.graph
        try:
            selected = graph.select(services)
            generations = graph.startup_order(selected)
        except (DependencyCycleError, KeyError) as exc:
            return self._error_result("up", exc)

        dangling = [(svc, dep) for svc, dep in graph.unknown if svc in selected]
        if dangling:
            return ServiceResult.failure(
                "up",
                ErrorCode.UNKNOWN_SERVICE,
                "Undeclared dependencies: " + ", ".join(f"{svc} -> {dep}" for svc, dep in dangling),
                unknown=[{"service": svc, "dependency": dep} for svc, dep in dangling],
            )

        warnings: list[str] = []
        try:
            with trace_span("provision"):
                self._provision(selected, warnings)
            with trace_span("build"):
                built = self._build(selected, no_cache=no_cache, only_missing=not build)
        except RuntimeCommandError as exc:
            return self._error_result("up", exc)

        records = {name: ServiceRecord(name) for name in selected}
        timeout = wait_timeout if wait_timeout is not None else self._project.settings.orchestrator.wait_timeout
        for step, generation in enumerate(generations, start=1):
            with trace_span(f"generation_{step}") as span:
                if span is not None:
                    span.annotate("services", ",".join(generation))
                self._run_generation(generation, records, timeout, warnings)

        states = {name: str(rec.state) for name, rec in records.items()}
        failures = sorted(name for name, rec in records.items() if rec.state in FAILURE_STATES)
        self._dispatch_event("post_up", {"ok": not failures, "states": states}, warnings)
        self._drain_events(warnings)

        order = [name for generation in generations for name in generation]
        data = {
            "project": self._project.name,
            "services": [records[name].to_dict() for name in order],
            "generations": generations,
            "built": built,
            "failed": failures,
        }
        if failures:
            return ServiceResult.failure(
                "up",
                ErrorCode.STARTUP_FAILED,
                f"{len(failures)} service(s) did not become ready: {', '.join(failures)}",
                data=data,
                warnings=warnings,
                failed=failures,
            )
        return ServiceResult(ok=True, op="up", data=data, warnings=warnings)

    @traced
    def down(self, *, volumes: bool = False) -> ServiceResult:
        """Stop and remove project containers (dependents first), then networks."""
        if (failed := self._load_failure("down")) is not None:
            return failed
        runtime = self._project.runtime
        if not runtime.available():
            return self._unavailable("down")

        compose = self._project.compose
        warnings: list[str] = []
        try:
            order = self._project.graph.shutdown_order()
        except DependencyCycleError as exc:
            warnings.append(f"{exc}; stopping in reverse name order")
            order = sorted(compose.services, reverse=True)

        stop_timeout = self._project.settings.orchestrator.stop_timeout
        removed: list[str] = []
        try:
            for name in order:
                cname = container_name(self._project.name, compose.service(name))
                status = runtime.inspect(cname)
                if status is None:
                    continue
                with trace_span(f"stop_{name}"):
                    if status.running:
                        runtime.stop(cname, timeout=stop_timeout)
                    runtime.remove(cname)
                log.info("service.removed", service=name, container=cname)
                removed.append(cname)
        except RuntimeCommandError as exc:
            return self._error_result("down", exc)

        networks: list[str] = []
        for net in compose.all_networks():
            spec = compose.networks.get(net)
            if spec is not None and spec.external:
                continue
            name = self._project.network_name(net)
            try:
                runtime.remove_network(name)
            except RuntimeCommandError as exc:
                warnings.append(f"Network {name} was not removed: {exc.stderr.strip() or exc}")
                continue
            networks.append(name)

        removed_volumes: list[str] = []
        if volumes:
            for vol, spec in compose.volumes.items():
                if spec.external:
                    continue
                name = self._project.volume_name(vol)
                try:
                    runtime.remove_volume(name)
                except RuntimeCommandError as exc:
                    warnings.append(f"Volume {name} was not removed: {exc.stderr.strip() or exc}")
                    continue
                removed_volumes.append(name)

        self._dispatch_event("post_down", {"removed": removed}, warnings)
        self._drain_events(warnings)
        return ServiceResult(
            ok=True,
            op="down",
            data={
                "project": self._project.name,
                "removed": removed,
                "networks": networks,
                "volumes": removed_volumes,
                "count": len(removed),
            },
            warnings=warnings,
        )

    @traced
    def build(self, services: list[str] | None = None, *, no_cache: bool = False) -> ServiceResult:
        """Build images for services that declare a build recipe."""
        if (failed := self._load_failure("build")) is not None:
            return failed
        if not self._project.runtime.available():
            return self._unavailable("build")
        try:
            selected = self._project.graph.select(services, include_deps=False)
            built = self._build(selected, no_cache=no_cache, only_missing=False)
        except (KeyError, RuntimeCommandError) as exc:
            return self._error_result("build", exc)
        warnings: list[str] = []
        if not built:
            warnings.append("No selected service declares a build recipe")
        return ServiceResult(
            ok=True,
            op="build",
            data={"built": built, "count": len(built)},
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def _unavailable(self, op: str) -> ServiceResult:
        engine = self._project.settings.runtime.engine
        return ServiceResult.failure(
            op,
            ErrorCode.RUNTIME_UNAVAILABLE,
            f"Container engine {engine!r} is not available",
            engine=engine,
        )

    def _provision(self, selected: list[str], warnings: list[str]) -> None:
        """Create the networks and named volumes the selected services use."""
        compose = self._project.compose
        runtime = self._project.runtime
        labels = {LABEL_PROJECT: self._project.name}

        needed_networks = sorted({net for name in selected for net in compose.service_networks(name)})
        for net in needed_networks:
            spec = compose.networks.get(net)
            name = self._project.network_name(net)
            if spec is not None and spec.external:
                if not runtime.network_exists(name):
                    warnings.append(f"External network {name} does not exist")
                continue
            driver = spec.effective_driver if spec is not None else "bridge"
            if runtime.ensure_network(name, driver=driver, labels=labels):
                log.info("network.created", network=name, driver=driver)

        needed_volumes = sorted(
            {
                mount.source
                for name in selected
                for mount in compose.service(name).volumes
                if mount.kind == "volume" and mount.source is not None
            }
        )
        for vol in needed_volumes:
            spec = compose.volumes.get(vol)
            if spec is not None and spec.external:
                continue
            name = self._project.volume_name(vol)
            if runtime.ensure_volume(name, labels=labels):
                log.info("volume.created", volume=name)

    def _build(self, selected: list[str], *, no_cache: bool, only_missing: bool) -> list[str]:
        """Build images; with *only_missing*, only those the engine lacks."""
        compose = self._project.compose
        runtime = self._project.runtime
        built: list[str] = []
        for name in selected:
            svc = compose.service(name)
            if svc.build is None:
                continue
            tag = image_tag(self._project.name, svc)
            if only_missing and runtime.image_created(tag) is not None:
                continue
            log.info("image.building", service=name, tag=tag)
            runtime.build(tag, svc.build, base_dir=self._project.compose_dir, no_cache=no_cache)
            built.append(name)
        return built

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def _run_generation(
        self,
        generation: list[str],
        records: dict[str, ServiceRecord],
        timeout: float | None,
        warnings: list[str],
    ) -> None:
        parallelism = max(1, self._project.settings.orchestrator.parallelism)
        if parallelism == 1 or len(generation) == 1:
            for name in generation:
                self._bring_up(name, records, timeout, warnings)
            return

        with ThreadPoolExecutor(
            max_workers=min(parallelism, len(generation)),
            thread_name_prefix="stackctl-up",
        ) as pool:
            futures = [
                pool.submit(run_in_context(self._bring_up), name, records, timeout, warnings)
                for name in generation
            ]
            for future in futures:
                future.result()

    def _warn(self, warnings: list[str], message: str) -> None:
        with self._lock:
            warnings.append(message)

    def _bring_up(
        self,
        name: str,
        records: dict[str, ServiceRecord],
        timeout: float | None,
        warnings: list[str],
    ) -> None:
        project = self._project
        graph = project.graph
        svc = project.compose.service(name)
        rec = records[name]
        bound = log.bind(service=name)

        for dep, condition in graph.direct_dependencies(name).items():
            dep_rec = records[dep]
            if condition_satisfied(condition, dep_rec.state, dep_rec.exit_code):
                continue
            reason = f"dependency {dep!r} is {dep_rec.state} (needs {condition})"
            if graph.is_required(dep, name):
                rec.transition(ServiceState.SKIPPED, reason=reason)
                bound.warning("service.skipped", reason=reason)
                self._dispatch_failed(rec, warnings)
                return
            self._warn(warnings, f"{name}: optional {reason}; starting anyway")

        spec = build_run_spec(project.name, project.compose, svc, base_dir=project.compose_dir)
        rec.container = spec.container_name
        runtime = project.runtime

        try:
            existing = runtime.inspect(spec.container_name)
            if existing is not None and existing.running:
                rec.reused = True
                rec.transition(ServiceState.STARTING)
                bound.info("service.reused", container=spec.container_name)
            else:
                if existing is not None:
                    runtime.remove(spec.container_name)
                self._dispatch_event(
                    "pre_service_start",
                    {"service": name, "container": spec.container_name},
                    warnings,
                )
                rec.transition(ServiceState.STARTING)
                bound.info("service.starting", container=spec.container_name, image=spec.image)
                runtime.run(spec)
                self._dispatch_event(
                    "post_service_start",
                    {"service": name, "container": spec.container_name},
                    warnings,
                )
        except RuntimeCommandError as exc:
            if rec.state == ServiceState.PENDING:
                rec.transition(ServiceState.STARTING)
            rec.transition(ServiceState.FAILED, reason=str(exc))
            bound.error("service.failed", reason=str(exc))
            self._dispatch_failed(rec, warnings)
            return

        wait_for_exit = any(
            graph.direct_dependencies(dependent).get(name) == DependencyCondition.COMPLETED
            for dependent in graph.dependents_of(name)
            if dependent in records
        )
        with trace_span(f"gate_{name}"):
            self._gate(svc, rec, timeout, wait_for_exit=wait_for_exit)

        if rec.state in FAILURE_STATES:
            bound.warning("service.not_ready", state=str(rec.state), reason=rec.reason)
            self._dispatch_failed(rec, warnings)
        else:
            bound.info("service.ready", state=str(rec.state), waited=round(rec.waited_seconds, 3))
            self._dispatch_event(
                "post_service_ready",
                {"service": name, "state": str(rec.state), "waited_seconds": rec.waited_seconds},
                warnings,
            )

    def _dispatch_failed(self, rec: ServiceRecord, warnings: list[str]) -> None:
        self._dispatch_event(
            "post_service_failed",
            {"service": rec.name, "state": str(rec.state), "reason": rec.reason or ""},
            warnings,
        )

    def _gate(
        self,
        svc: Service,
        rec: ServiceRecord,
        timeout: float | None,
        *,
        wait_for_exit: bool = False,
    ) -> None:
        """Poll the engine until the service is ready, failed, or out of time."""
        runtime = self._project.runtime
        poll = self._project.settings.orchestrator.poll_interval
        hc = svc.healthcheck if svc.has_healthcheck else None
        timeout = gate_timeout(svc, timeout)
        start = self._clock()
        deadline = start + timeout
        try:
            while True:
                status = runtime.inspect(rec.container)
                if status is None:
                    rec.transition(ServiceState.FAILED, reason="container disappeared after start")
                    return

                if status.state in _EXITED_STATES:
                    rec.exit_code = status.exit_code
                    if status.exit_code == 0:
                        rec.transition(ServiceState.EXITED)
                    else:
                        rec.transition(ServiceState.FAILED, reason=f"exited with code {status.exit_code}")
                    return

                if status.running and not wait_for_exit:
                    if hc is None:
                        rec.transition(ServiceState.RUNNING)
                        return
                    if status.health == "healthy":
                        rec.transition(ServiceState.HEALTHY)
                        return
                    if status.health == "unhealthy":
                        rec.transition(ServiceState.UNHEALTHY, reason="health check reported unhealthy")
                        return

                if self._clock() >= deadline:
                    if hc is not None and status.running:
                        rec.transition(
                            ServiceState.UNHEALTHY,
                            reason=f"not healthy within {timeout:g}s",
                        )
                    elif wait_for_exit and status.running:
                        rec.transition(ServiceState.RUNNING, reason=f"still running after {timeout:g}s")
                    else:
                        rec.transition(
                            ServiceState.FAILED,
                            reason=f"not running within {timeout:g}s (state {status.state})",
                        )
                    return
                self._sleep(poll)
        except RuntimeCommandError as exc:
            rec.transition(ServiceState.FAILED, reason=str(exc))
        finally:
            rec.waited_seconds = self._clock() - start
