"""Service runtime states and the transitions the control loop may make.

A service walks ``pending -> starting -> running -> healthy`` on the happy
path. Services whose required dependencies never become ready end up
``skipped``; services that fail their gate end up ``unhealthy`` or
``failed``. One-shot services finish as ``exited``.
"""

from __future__ import annotations

from enum import StrEnum

from stackctl.domain.compose import DependencyCondition


class ServiceState(StrEnum):
    """Runtime state of a service as tracked by the control loop."""

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    EXITED = "exited"
    FAILED = "failed"
    SKIPPED = "skipped"
    STOPPED = "stopped"


SERVICE_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["starting", "skipped"],
    "starting": ["running", "healthy", "exited", "failed", "unhealthy"],
    "running": ["healthy", "unhealthy", "exited", "stopped"],
    "healthy": ["unhealthy", "stopped"],
    "unhealthy": ["healthy", "stopped"],
    "exited": ["stopped"],
    "failed": ["stopped"],
    "skipped": [],
    "stopped": ["starting"],
}

# States after which the control loop will not touch a service again.
TERMINAL_STATES = frozenset(
    {
        ServiceState.HEALTHY,
        ServiceState.RUNNING,
        ServiceState.UNHEALTHY,
        ServiceState.EXITED,
        ServiceState.FAILED,
        ServiceState.SKIPPED,
    }
)

# Final states that count as a failed startup.
FAILURE_STATES = frozenset({ServiceState.UNHEALTHY, ServiceState.FAILED, ServiceState.SKIPPED})


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]] = SERVICE_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed


def condition_satisfied(
    condition: DependencyCondition,
    state: ServiceState,
    exit_code: int | None = None,
) -> bool:
    """Whether a dependency in *state* satisfies *condition*."""
    if condition == DependencyCondition.HEALTHY:
        return state == ServiceState.HEALTHY
    if condition == DependencyCondition.COMPLETED:
        return state == ServiceState.EXITED and exit_code == 0
    # A started container satisfies service_started even if its probe later fails.
    return state in (
        ServiceState.RUNNING,
        ServiceState.HEALTHY,
        ServiceState.UNHEALTHY,
        ServiceState.EXITED,
    )
