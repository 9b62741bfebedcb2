"""Backend datasource URLs (JDBC and plain database URLs)."""

from __future__ import annotations

from urllib.parse import unquote, urlsplit

from pydantic import BaseModel

DEFAULT_PORTS: dict[str, int] = {
    "postgresql": 5432,
    "postgres": 5432,
    "mysql": 3306,
    "mariadb": 3306,
    "sqlserver": 1433,
    "oracle": 1521,
}


class Datasource(BaseModel):
    """Connection coordinates extracted from a datasource URL."""

    model_config = {"frozen": True}

    scheme: str
    host: str
    port: int | None = None
    database: str | None = None
    username: str | None = None

    @property
    def effective_port(self) -> int | None:
        return self.port if self.port is not None else DEFAULT_PORTS.get(self.scheme)


def parse_datasource(url: str) -> Datasource:
    """Parse ``jdbc:<driver>://host[:port]/db`` or ``scheme://[user@]host[:port]/db``.

    Raises:
        ValueError: if no host can be extracted.

    Examples:
        >>> parse_datasource("jdbc:postgresql://db:5432/app").host
        'db'
        >>> parse_datasource("mysql://root@mysql/shop").effective_port
        3306
    """
    text = url.strip()
    if text.startswith("jdbc:"):
        text = text[len("jdbc:") :]
    if "://" not in text:
        raise ValueError(f"Not a datasource URL: {url!r}")

    # SQL Server JDBC URLs put properties after ';' rather than '?'.
    head, _, _props = text.partition(";")
    parts = urlsplit(head)
    if not parts.hostname:
        raise ValueError(f"Datasource URL has no host: {url!r}")

    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"Invalid port in datasource URL: {url!r}") from exc

    database = parts.path.lstrip("/") or None
    return Datasource(
        scheme=parts.scheme.lower(),
        host=parts.hostname,
        port=port,
        database=unquote(database) if database else None,
        username=unquote(parts.username) if parts.username else None,
    )
