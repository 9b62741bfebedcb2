"""Tests for config and composition file discovery."""

from pathlib import Path

import pytest

from stackctl.config.discovery import CONFIG_FILENAME, find_compose_file, find_config


class TestFindConfig:
    def test_finds_in_current_dir(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text('[project]\nname = "shop"\n')
        assert find_config(tmp_path) == config_file

    def test_walks_up(self, tmp_path: Path) -> None:
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("")
        child = tmp_path / "backend" / "src" / "main"
        child.mkdir(parents=True)
        assert find_config(child) == config_file

    def test_returns_none_when_not_found(self, tmp_path: Path) -> None:
        child = tmp_path / "empty"
        child.mkdir()
        assert find_config(child) is None

    def test_env_var_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text("")
        monkeypatch.setenv("STACKCTL_CONFIG", str(config_file))
        assert find_config(tmp_path / "elsewhere") == config_file

    def test_env_var_missing_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("")
        monkeypatch.setenv("STACKCTL_CONFIG", str(tmp_path / "nope.toml"))
        assert find_config(tmp_path) is None


class TestFindComposeFile:
    def test_conventional_names_in_order(self, tmp_path: Path) -> None:
        (tmp_path / "docker-compose.yml").write_text("services: {}\n")
        assert find_compose_file(tmp_path) == tmp_path / "docker-compose.yml"
        (tmp_path / "compose.yaml").write_text("services: {}\n")
        assert find_compose_file(tmp_path) == tmp_path / "compose.yaml"

    def test_explicit_relative(self, tmp_path: Path) -> None:
        (tmp_path / "stack.yaml").write_text("services: {}\n")
        assert find_compose_file(tmp_path, "stack.yaml") == tmp_path / "stack.yaml"

    def test_explicit_missing(self, tmp_path: Path) -> None:
        (tmp_path / "compose.yaml").write_text("services: {}\n")
        assert find_compose_file(tmp_path, "other.yaml") is None

    def test_none_found(self, tmp_path: Path) -> None:
        assert find_compose_file(tmp_path) is None
