"""BaseService — foundation for all stackctl services.

Every service receives a :class:`Project` at construction time. The
Project provides the composition file, proxy configuration, dependency
graph, container runtime and event bus.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from stackctl.domain.dependencies import DependencyCycleError
from stackctl.domain.proxy import ProxyConfigError
from stackctl.infrastructure.loader import ComposeError
from stackctl.infrastructure.runtime import RuntimeCommandError
from stackctl.services.result import ErrorCode, ServiceResult

if TYPE_CHECKING:
    from stackctl.infrastructure.project import Project

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class PlanService(BaseService):
            def plan(self) -> ServiceResult:
                if (failed := self._load_failure("plan")) is not None:
                    return failed
                order = self._project.graph.startup_order()
                ...
    """

    def __init__(self, project: Project) -> None:
        self._project = project

    def _load_failure(self, op: str) -> ServiceResult | None:
        """Load the composition file; return a failed result if that fails."""
        try:
            self._project.compose  # noqa: B018
        except ComposeError as exc:
            code = ErrorCode.COMPOSE_NOT_FOUND if exc.not_found else ErrorCode.INVALID_COMPOSE
            return ServiceResult.failure(op, code, str(exc))
        return None

    @staticmethod
    def _error_result(op: str, exc: Exception) -> ServiceResult:
        """Translate a lower-layer exception into a failed ServiceResult."""
        if isinstance(exc, DependencyCycleError):
            return ServiceResult.failure(op, ErrorCode.DEPENDENCY_CYCLE, str(exc), cycle=exc.cycle)
        if isinstance(exc, ProxyConfigError):
            return ServiceResult.failure(op, ErrorCode.INVALID_PROXY, str(exc))
        if isinstance(exc, RuntimeCommandError):
            return ServiceResult.failure(
                op,
                ErrorCode.RUNTIME_ERROR,
                str(exc),
                returncode=exc.returncode,
            )
        if isinstance(exc, KeyError):
            return ServiceResult.failure(op, ErrorCode.UNKNOWN_SERVICE, str(exc.args[0]))
        raise exc

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Dispatch a lifecycle event. No-op if event bus not initialized.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        bus = self._project.event_bus
        if bus is None:
            return
        try:
            bus.dispatch(hook_name, {"project": self._project.name, **payload})
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            warnings.append(f"Event dispatch failed for {hook_name}")

    def _drain_events(self, warnings: list[str]) -> None:
        """Wait for queued hooks and fold their failures into *warnings*."""
        bus = self._project.event_bus
        if bus is None:
            return
        warnings.extend(bus.drain())
