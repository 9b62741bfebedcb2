"""ScaffoldService — generate a three-tier project (database, API, SPA).

The generated project is wired the way :class:`CheckService` expects:
the backend reaches the database by service name, waits for it with
``service_healthy``, and the proxy forwards the API prefix to the backend
while serving the SPA with an ``index.html`` fallback.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import TemplateNotFound

from stackctl.config.models import RolesConfig
from stackctl.infrastructure.runtime import project_slug
from stackctl.infrastructure.templates import build_template_environment
from stackctl.services.result import ErrorCode, ServiceResult
from stackctl.services.telemetry import traced

DATABASES: dict[str, dict[str, Any]] = {
    "postgres": {
        "image": "postgres:16-alpine",
        "port": 5432,
        "data_dir": "/var/lib/postgresql/data",
        "scheme": "postgresql",
        "environment": {
            "POSTGRES_DB": "{database}",
            "POSTGRES_USER": "${{DB_USER:-{user}}}",
            "POSTGRES_PASSWORD": "${{DB_PASSWORD:-{password}}}",
        },
        "healthcheck": '["CMD-SHELL", "pg_isready -U {user} -d {database}"]',
    },
    "mysql": {
        "image": "mysql:8.4",
        "port": 3306,
        "data_dir": "/var/lib/mysql",
        "scheme": "mysql",
        "environment": {
            "MYSQL_DATABASE": "{database}",
            "MYSQL_USER": "${{DB_USER:-{user}}}",
            "MYSQL_PASSWORD": "${{DB_PASSWORD:-{password}}}",
            "MYSQL_ROOT_PASSWORD": "${{DB_PASSWORD:-{password}}}",
        },
        "healthcheck": '["CMD", "mysqladmin", "ping", "-h", "localhost"]',
    },
}

BACKEND_PORT = 8080
FRONTEND_PORT = 3000

# (template, output path relative to the project root)
SCAFFOLD_FILES: tuple[tuple[str, str], ...] = (
    ("compose.yaml.j2", "compose.yaml"),
    ("nginx.conf.j2", "frontend/nginx.conf"),
    ("backend.Dockerfile.j2", "backend/Dockerfile"),
    ("frontend.Dockerfile.j2", "frontend/Dockerfile"),
    ("env.j2", ".env"),
    ("stackctl.toml.j2", "stackctl.toml"),
)


def _database_context(flavor: str, roles: RolesConfig, dbname: str) -> dict[str, Any]:
    spec = DATABASES[flavor]
    values = {"database": dbname, "user": "app", "password": "change-me"}
    return {
        "image": spec["image"],
        "port": spec["port"],
        "data_dir": spec["data_dir"],
        "environment": {k: v.format(**values) for k, v in spec["environment"].items()},
        "healthcheck": spec["healthcheck"].format(**values),
        "jdbc_url": f"jdbc:{spec['scheme']}://{roles.database}:{spec['port']}/{dbname}",
        "user": values["user"],
        "password": values["password"],
    }


class ScaffoldService:
    """Create new projects from packaged (or user-overridden) templates."""

    @classmethod
    @traced
    def init(
        cls,
        target: Path,
        *,
        name: str | None = None,
        database: str = "postgres",
        force: bool = False,
        roles: RolesConfig | None = None,
    ) -> ServiceResult:
        """Render the project files into *target*.

        Existing files are never overwritten unless *force* is set; the
        check happens before anything is written.
        """
        if database not in DATABASES:
            return ServiceResult.failure(
                "init",
                ErrorCode.INVALID_COMPOSE,
                f"Unsupported database {database!r}; choose from {', '.join(DATABASES)}",
            )

        roles = roles or RolesConfig()
        slug = project_slug(name or target.resolve().name)
        existing = [rel for _, rel in SCAFFOLD_FILES if (target / rel).exists()]
        if existing and not force:
            return ServiceResult.failure(
                "init",
                ErrorCode.TARGET_EXISTS,
                f"Refusing to overwrite existing files in {target}: {', '.join(existing)}",
                existing=existing,
            )

        context = {
            "name": slug,
            "roles": roles,
            "datasource": roles.datasource,
            "db": _database_context(database, roles, slug.replace("-", "_")),
            "backend_port": BACKEND_PORT,
            "frontend_port": FRONTEND_PORT,
            "volume": f"{roles.database}-data",
            "network": f"{slug}-net",
        }
        env = build_template_environment("project", project_root=target)
        rendered: list[tuple[Path, str]] = []
        for template_name, rel in SCAFFOLD_FILES:
            try:
                template = env.get_template(template_name)
            except TemplateNotFound as exc:
                raise RuntimeError(f"Packaged template missing: {template_name}") from exc
            rendered.append((target / rel, template.render(**context)))

        files: list[str] = []
        for path, text in rendered:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            files.append(path.relative_to(target).as_posix())

        warnings = [f"Overwrote {', '.join(existing)}"] if existing else []
        return ServiceResult(
            ok=True,
            op="init",
            data={
                "path": str(target),
                "name": slug,
                "database": database,
                "files": files,
                "services": [roles.database, roles.backend, roles.frontend],
            },
            warnings=warnings,
        )
