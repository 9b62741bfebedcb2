"""Tests for Project — lazy loading, naming and plugin wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from stackctl.domain.proxy import ProxyConfigError
from stackctl.infrastructure.loader import ComposeError
from stackctl.infrastructure.project import Project
from stackctl.infrastructure.runtime import DockerCli
from tests.conftest import make_project, write_compose, write_proxy


class TestLoading:
    def test_scaffolded_project(self, project: Project) -> None:
        assert sorted(project.compose.services) == ["backend", "db", "frontend"]
        assert project.graph.startup_order() == [["db"], ["backend"], ["frontend"]]
        assert project.proxy is not None

    def test_env_file_feeds_interpolation(self, project: Project) -> None:
        env = project.compose.service("backend").environment
        assert env["SPRING_DATASOURCE_USERNAME"] == "app"

    def test_no_compose_file(self, tmp_path: Path) -> None:
        project = make_project(tmp_path)
        with pytest.raises(ComposeError) as exc_info:
            project.compose  # noqa: B018
        assert exc_info.value.not_found

    def test_compose_dir_follows_file_flag(self, tmp_path: Path) -> None:
        write_compose(tmp_path / "deploy", "services:\n  web:\n    image: nginx\n")
        project = make_project(tmp_path, compose_file="deploy/compose.yaml")
        assert project.compose_dir == tmp_path / "deploy"
        assert project.root == tmp_path

    def test_missing_proxy_is_none(self, tmp_path: Path) -> None:
        write_compose(tmp_path, "services:\n  web:\n    image: nginx\n")
        assert make_project(tmp_path).proxy is None

    def test_malformed_proxy_raises(self, tmp_path: Path) -> None:
        write_compose(tmp_path, "services:\n  web:\n    image: nginx\n")
        write_proxy(tmp_path, "server {\n")
        with pytest.raises(ProxyConfigError):
            make_project(tmp_path).proxy  # noqa: B018

    def test_explicit_compose_file(self, tmp_path: Path) -> None:
        (tmp_path / "stack.yml").write_text("services:\n  web:\n    image: nginx\n")
        project = make_project(tmp_path, compose_file="stack.yml")
        assert project.compose_path == tmp_path / "stack.yml"


class TestNaming:
    def test_from_toml(self, project: Project) -> None:
        assert project.name == "shop"
        assert project.network_name("shop-net") == "shop_shop-net"
        assert project.volume_name("db-data") == "shop_db-data"

    def test_flag_wins(self, project_root: Path) -> None:
        assert make_project(project_root, project_name="Other Shop").name == "other-shop"

    def test_compose_name_then_directory(self, tmp_path: Path) -> None:
        root = tmp_path / "My Stack"
        write_compose(root, "name: Named\nservices:\n  web:\n    image: nginx\n")
        assert make_project(root).name == "named"
        write_compose(root, "services:\n  web:\n    image: nginx\n")
        assert make_project(root).name == "my-stack"

    def test_explicit_resource_names(self, tmp_path: Path) -> None:
        write_compose(
            tmp_path,
            "services:\n  web:\n    image: nginx\n"
            "networks:\n  edge:\n    name: shared-edge\n"
            "volumes:\n  data:\n    name: keep-me\n",
        )
        project = make_project(tmp_path)
        assert project.network_name("edge") == "shared-edge"
        assert project.volume_name("data") == "keep-me"


class TestRuntimeAndPlugins:
    def test_default_runtime_is_docker_cli(self, tmp_path: Path) -> None:
        project = Project(make_project(tmp_path).settings)
        assert isinstance(project.runtime, DockerCli)
        assert project.runtime.engine == "docker"

    def test_event_bus_lifecycle(self, project: Project) -> None:
        assert project.event_bus is not None
        project.close()
        assert project.event_bus is None

    def test_nothing_read_until_asked(self, tmp_path: Path) -> None:
        project = Project(make_project(tmp_path).settings)
        assert project.state_dir == tmp_path / ".stackctl"
        assert project.event_bus is None
