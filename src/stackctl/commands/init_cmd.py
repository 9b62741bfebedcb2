"""Command: project scaffolding (named init_cmd to avoid shadowing builtins)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_INIT_EXAMPLES = """\
  stackctl init
  stackctl init shop --name shop
  stackctl init . --database mysql
  stackctl init existing-dir --force"""


@click.command("init", cls=StackCommand, examples=_INIT_EXAMPLES)
@click.argument("path", required=False, default=".")
@click.option("--name", default=None, help="Project name (default: directory name).")
@click.option(
    "--database",
    type=click.Choice(["postgres", "mysql"], case_sensitive=False),
    default="postgres",
    show_default=True,
    help="Database flavor.",
)
@click.option("--force", is_flag=True, help="Overwrite existing files.")
@click.pass_obj
def init_cmd(app: AppContext, path: str, name: str | None, database: str, force: bool) -> None:
    """Scaffold a database + API + frontend project."""
    from stackctl.services.scaffold import ScaffoldService

    app.emit(
        ScaffoldService.init(
            Path(path).resolve(),
            name=name,
            database=database.lower(),
            force=force,
            roles=app.settings.roles,
        )
    )
