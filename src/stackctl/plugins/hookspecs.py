"""Pluggy hook specifications for stack lifecycle events.

Service-level hooks fire from the control loop as each service moves
through its gate; stack-level hooks fire once per ``up``/``down``/``check``.
"""

from __future__ import annotations

from typing import Any

import pluggy

hookspec = pluggy.HookspecMarker("stackctl")


class StackctlHookSpec:
    """Hook specifications for the stackctl plugin system."""

    @hookspec
    def pre_service_start(self, project: str, service: str, container: str) -> None:
        """Called just before a service container is started."""

    @hookspec
    def post_service_start(self, project: str, service: str, container: str) -> None:
        """Called after the engine accepted the container start."""

    @hookspec
    def post_service_ready(
        self,
        project: str,
        service: str,
        state: str,
        waited_seconds: float,
    ) -> None:
        """Called when a service passed its gate (running, healthy, or exited cleanly)."""

    @hookspec
    def post_service_failed(
        self,
        project: str,
        service: str,
        state: str,
        reason: str,
    ) -> None:
        """Called when a service failed, went unhealthy, or was skipped."""

    @hookspec
    def post_up(self, project: str, ok: bool, states: dict[str, str]) -> None:
        """Called after ``up`` finishes."""

    @hookspec
    def post_down(self, project: str, removed: list[str]) -> None:
        """Called after ``down`` finishes."""

    @hookspec
    def post_check(self, project: str, errors: int, warnings: int, issues: list[dict[str, Any]]) -> None:
        """Called after a consistency check."""
