"""Tests for template loading with project-local overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from jinja2 import UndefinedError

from stackctl.infrastructure.templates import build_template_environment


class TestBuildTemplateEnvironment:
    def test_packaged_templates(self) -> None:
        env = build_template_environment("project")
        text = env.get_template("env.j2").render(db={"user": "app", "password": "pw"})
        assert text.endswith("DB_PASSWORD=pw\n")

    def test_namespaced_override(self, tmp_path: Path) -> None:
        override = tmp_path / ".stackctl" / "templates" / "project"
        override.mkdir(parents=True)
        (override / "env.j2").write_text("custom\n")
        env = build_template_environment("project", project_root=tmp_path)
        assert env.get_template("env.j2").render() == "custom\n"

    def test_shared_root_override(self, tmp_path: Path) -> None:
        root = tmp_path / ".stackctl" / "templates"
        root.mkdir(parents=True)
        (root / "env.j2").write_text("shared\n")
        env = build_template_environment("project", project_root=tmp_path)
        assert env.get_template("env.j2").render() == "shared\n"

    def test_strict_undefined(self) -> None:
        env = build_template_environment("project")
        with pytest.raises(UndefinedError):
            env.get_template("env.j2").render()
