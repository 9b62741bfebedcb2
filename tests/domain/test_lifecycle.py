"""Tests for service states, transitions and dependency conditions."""

import pytest

from stackctl.domain.compose import DependencyCondition
from stackctl.domain.lifecycle import (
    FAILURE_STATES,
    ServiceState,
    condition_satisfied,
    is_valid_transition,
)


class TestTransitions:
    @pytest.mark.parametrize(
        ("current", "target"),
        [("pending", "starting"), ("pending", "skipped"), ("starting", "healthy"), ("running", "stopped")],
    )
    def test_allowed(self, current: str, target: str) -> None:
        assert is_valid_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [("pending", "healthy"), ("skipped", "starting"), ("exited", "running"), ("bogus", "pending")],
    )
    def test_rejected(self, current: str, target: str) -> None:
        assert not is_valid_transition(current, target)

    def test_failure_states(self) -> None:
        assert ServiceState.SKIPPED in FAILURE_STATES
        assert ServiceState.EXITED not in FAILURE_STATES


class TestConditions:
    def test_healthy_requires_healthy(self) -> None:
        assert condition_satisfied(DependencyCondition.HEALTHY, ServiceState.HEALTHY)
        assert not condition_satisfied(DependencyCondition.HEALTHY, ServiceState.RUNNING)

    def test_started_accepts_any_started_state(self) -> None:
        for state in (ServiceState.RUNNING, ServiceState.UNHEALTHY, ServiceState.EXITED):
            assert condition_satisfied(DependencyCondition.STARTED, state)
        assert not condition_satisfied(DependencyCondition.STARTED, ServiceState.FAILED)

    def test_completed_requires_zero_exit(self) -> None:
        assert condition_satisfied(DependencyCondition.COMPLETED, ServiceState.EXITED, 0)
        assert not condition_satisfied(DependencyCondition.COMPLETED, ServiceState.EXITED, 1)
        assert not condition_satisfied(DependencyCondition.COMPLETED, ServiceState.RUNNING)
