"""Tests for build, up and down commands."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from stackctl.cli import cli
from tests.conftest import FakeRuntime


@pytest.mark.usefixtures("_isolated_project")
class TestUpCommand:
    def test_up(self, cli_runner: CliRunner, fake_runtime: FakeRuntime) -> None:
        result = cli_runner.invoke(cli, ["--sync", "up"])
        assert result.exit_code == 0, result.output
        assert fake_runtime.started == ["db", "backend", "frontend"]
        assert "healthy" in result.stdout

    def test_up_json(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "--sync", "up", "backend"])
        data = json.loads(result.stdout)
        assert data["data"]["generations"] == [["db"], ["backend"]]
        assert [s["state"] for s in data["data"]["services"]] == ["healthy", "healthy"]

    def test_up_failure_exit_code(self, cli_runner: CliRunner, fake_runtime: FakeRuntime) -> None:
        fake_runtime.health["backend"] = ["unhealthy"]
        result = cli_runner.invoke(cli, ["--json", "--sync", "up"])
        assert result.exit_code == 1
        data = json.loads(result.stderr)
        assert data["error"]["code"] == "STARTUP_FAILED"
        assert data["data"]["failed"] == ["backend", "frontend"]

    def test_engine_unavailable(self, cli_runner: CliRunner, fake_runtime: FakeRuntime) -> None:
        fake_runtime.is_available = False
        result = cli_runner.invoke(cli, ["up"])
        assert result.exit_code == 1
        assert "not available" in result.stderr

    def test_wait_timeout_rejects_garbage(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["up", "--wait-timeout", "soon"])
        assert result.exit_code == 2


@pytest.mark.usefixtures("_isolated_project")
class TestDownCommand:
    def test_down(self, cli_runner: CliRunner, fake_runtime: FakeRuntime) -> None:
        cli_runner.invoke(cli, ["--sync", "up"])
        result = cli_runner.invoke(cli, ["--json", "--sync", "down", "--volumes"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)["data"]
        assert data["removed"] == ["shop-frontend", "shop-backend", "shop-db"]
        assert data["volumes"] == ["shop_db-data"]
        assert fake_runtime.containers == {}


@pytest.mark.usefixtures("_isolated_project")
class TestBuildCommand:
    def test_build(self, cli_runner: CliRunner, fake_runtime: FakeRuntime) -> None:
        result = cli_runner.invoke(cli, ["--json", "build", "backend", "--no-cache"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["data"]["built"] == ["backend"]
        assert fake_runtime.calls_named("build") == [("build", "shop-backend", True)]

    def test_nothing_to_build_warns(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["build", "db"])
        assert result.exit_code == 0
        assert "WARNING: No selected service declares a build recipe" in result.stderr
