"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, stackctl.toml only contains overrides.
A project that follows the conventional layout needs no config file at all.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

COMPOSE_FILENAMES: tuple[str, ...] = (
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
)


# --- stackctl.toml sections ---


class ProjectConfig(BaseModel):
    """[project] section."""

    model_config = {"frozen": True}

    name: str | None = None
    compose_file: str | None = None
    proxy_config: str = "frontend/nginx.conf"
    env_file: str = ".env"


class DatasourceEnvConfig(BaseModel):
    """[roles.datasource] section — backend environment variable names."""

    model_config = {"frozen": True}

    url: str = "SPRING_DATASOURCE_URL"
    username: str = "SPRING_DATASOURCE_USERNAME"
    password: str = "SPRING_DATASOURCE_PASSWORD"
    schema_mode: str = "SPRING_JPA_HIBERNATE_DDL_AUTO"
    sql_logging: str = "SPRING_JPA_SHOW_SQL"

    def names(self) -> list[str]:
        return [self.url, self.username, self.password, self.schema_mode, self.sql_logging]


class RolesConfig(BaseModel):
    """[roles] section."""

    model_config = {"frozen": True}

    database: str = "db"
    backend: str = "backend"
    frontend: str = "frontend"
    api_prefix: str = "/api/"
    datasource: DatasourceEnvConfig = Field(default_factory=DatasourceEnvConfig)


class OrchestratorConfig(BaseModel):
    """[orchestrator] section."""

    model_config = {"frozen": True}

    poll_interval: float = 1.0
    wait_timeout: float | None = None
    parallelism: int = 4
    stop_timeout: int = 10


class RuntimeConfig(BaseModel):
    """[runtime] section."""

    model_config = {"frozen": True}

    engine: str = "docker"
    command_timeout: float = 600.0


class DoctorConfig(BaseModel):
    """[doctor] section."""

    model_config = {"frozen": True}

    probe_http: bool = True
    probe_timeout: float = 3.0


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    event_log: dict[str, Any] = Field(default_factory=lambda: {"enabled": True})
