"""Tests for engine naming, run argument construction and the Docker CLI adapter."""

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from stackctl.domain.compose import ComposeFile
from stackctl.infrastructure.runtime import (
    LABEL_PROJECT,
    DockerCli,
    RuntimeCommandError,
    _parse_engine_timestamp,
    build_run_spec,
    container_name,
    image_tag,
    project_slug,
    resource_name,
    run_arguments,
)

COMPOSE = ComposeFile.model_validate(
    {
        "services": {
            "db": {
                "image": "postgres:16-alpine",
                "environment": {"POSTGRES_DB": "shop", "PGDATA": None},
                "ports": ["5432:5432"],
                "volumes": ["db-data:/var/lib/postgresql/data", "./init:/docker-entrypoint-initdb.d:ro", "/tmp"],
                "networks": ["back", "front"],
                "healthcheck": {
                    "test": ["CMD-SHELL", "pg_isready -U app"],
                    "interval": "10s",
                    "timeout": "5s",
                    "retries": 5,
                    "start_period": "10s",
                },
                "restart": "unless-stopped",
            },
            "api": {"build": "./backend", "container_name": "shop-api", "command": "java -jar app.jar"},
        },
        "volumes": {"db-data": None},
        "networks": {"back": None, "front": {"name": "shared-front"}},
    }
)


class TestNaming:
    def test_project_slug(self) -> None:
        assert project_slug("My Shop") == "my-shop"
        assert project_slug("!!!") == "stack"

    def test_container_name(self) -> None:
        assert container_name("shop", COMPOSE.service("db")) == "shop-db-1"
        assert container_name("shop", COMPOSE.service("api")) == "shop-api"

    def test_resource_and_image_names(self) -> None:
        assert resource_name("shop", "db-data") == "shop_db-data"
        assert image_tag("shop", COMPOSE.service("api")) == "shop-api"
        assert image_tag("shop", COMPOSE.service("db")) == "postgres:16-alpine"


class TestBuildRunSpec:
    def test_db(self, tmp_path: Path) -> None:
        spec = build_run_spec("shop", COMPOSE, COMPOSE.service("db"), base_dir=tmp_path)
        assert spec.container_name == "shop-db-1"
        assert spec.networks == ("shop_back", "shared-front")
        assert spec.mounts == (
            "shop_db-data:/var/lib/postgresql/data",
            f"{(tmp_path / 'init').resolve()}:/docker-entrypoint-initdb.d:ro",
            "/tmp",
        )
        assert spec.health_cmd == "pg_isready -U app"
        assert spec.health_options == {"interval": "10s", "timeout": "5s", "retries": "5", "start-period": "10s"}
        assert spec.labels[LABEL_PROJECT] == "shop"

    def test_built_service_on_default_network(self, tmp_path: Path) -> None:
        spec = build_run_spec("shop", COMPOSE, COMPOSE.service("api"), base_dir=tmp_path)
        assert spec.image == "shop-api"
        assert spec.networks == ("shop_default",)
        assert spec.command == ("java", "-jar", "app.jar")
        assert spec.health_cmd is None


class TestRunArguments:
    def test_db(self, tmp_path: Path) -> None:
        args = run_arguments(build_run_spec("shop", COMPOSE, COMPOSE.service("db"), base_dir=tmp_path))
        assert args[:4] == ["run", "--detach", "--name", "shop-db-1"]
        assert args[args.index("--network") + 1] == "shop_back"
        assert args[args.index("--network-alias") + 1] == "db"
        assert args[args.index("POSTGRES_DB=shop") - 1] == "--env"
        assert "PGDATA" in args
        assert args[args.index("--health-cmd") + 1] == "pg_isready -U app"
        assert args[args.index("--restart") + 1] == "unless-stopped"
        assert args[-1] == "postgres:16-alpine"

    def test_command_follows_image(self, tmp_path: Path) -> None:
        args = run_arguments(build_run_spec("shop", COMPOSE, COMPOSE.service("api"), base_dir=tmp_path))
        assert args[-4:] == ["shop-api", "java", "-jar", "app.jar"]
        assert "--health-cmd" not in args


class TestParseEngineTimestamp:
    def test_nanoseconds(self) -> None:
        assert _parse_engine_timestamp("2024-05-01T10:00:00.123456789Z") == datetime(
            2024, 5, 1, 10, 0, 0, 123456, tzinfo=UTC
        )

    def test_short_fraction_and_offset(self) -> None:
        parsed = _parse_engine_timestamp("2024-05-01T10:00:00.5+02:00")
        assert parsed is not None
        assert parsed.microsecond == 500000

    def test_empty_and_garbage(self) -> None:
        assert _parse_engine_timestamp("") is None
        assert _parse_engine_timestamp("yesterday") is None


class _Recorder:
    """Stand-in for ``subprocess.run`` returning scripted results."""

    def __init__(self, results: dict[str, tuple[int, str]] | None = None) -> None:
        self.calls: list[list[str]] = []
        self.results = results or {}

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append(argv)
        code, out = self.results.get(argv[1], (0, ""))
        return subprocess.CompletedProcess(argv, code, stdout=out, stderr="boom" if code else "")


class TestDockerCli:
    def test_inspect(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rec = _Recorder({"inspect": (0, '{"Status": "running", "ExitCode": 0, "Health": {"Status": "starting"}}')})
        monkeypatch.setattr(subprocess, "run", rec)
        status = DockerCli("podman").inspect("shop-db")
        assert status is not None
        assert (status.state, status.health, status.running) == ("running", "starting", True)
        assert rec.calls[0][0] == "podman"

    def test_inspect_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", _Recorder({"inspect": (1, "")}))
        assert DockerCli().inspect("nope") is None

    def test_ensure_network_existing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rec = _Recorder()
        monkeypatch.setattr(subprocess, "run", rec)
        assert DockerCli().ensure_network("shop_default") is False
        assert len(rec.calls) == 1

    def test_failure_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", _Recorder({"stop": (1, "")}))
        with pytest.raises(RuntimeCommandError) as exc_info:
            DockerCli().stop("shop-db")
        assert exc_info.value.returncode == 1
        assert "boom" in str(exc_info.value)

    def test_missing_binary(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _missing(argv: list[str], **kwargs: Any) -> None:
            raise FileNotFoundError(argv[0])

        monkeypatch.setattr(subprocess, "run", _missing)
        with pytest.raises(RuntimeCommandError) as exc_info:
            DockerCli("nerdctl").logs("x")
        assert exc_info.value.returncode == 127

    def test_exec_returns_code(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(subprocess, "run", _Recorder({"exec": (2, "")}))
        code, _ = DockerCli().exec("shop-db", ["false"])
        assert code == 2

    def test_stats_rows(self, monkeypatch: pytest.MonkeyPatch) -> None:
        rows = '{"Name": "a", "CPUPerc": "1%"}\n\n{"Name": "b", "CPUPerc": "2%"}\n'
        monkeypatch.setattr(subprocess, "run", _Recorder({"stats": (0, rows)}))
        assert [r["Name"] for r in DockerCli().stats(["a", "b"])] == ["a", "b"]
        assert DockerCli().stats([]) == []
