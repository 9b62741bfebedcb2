"""Commands: resolved composition (config) and service environment (env)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_CONFIG_EXAMPLES = """\
  stackctl config
  stackctl --json config | jq '.data.missing_variables'"""

_ENV_EXAMPLES = """\
  stackctl env backend
  stackctl env backend --show-secrets"""


@click.command("config", cls=StackCommand, examples=_CONFIG_EXAMPLES)
@click.pass_obj
def config_cmd(app: AppContext) -> None:
    """Print the composition file with variables interpolated."""
    from stackctl.services.status import StatusService

    app.emit(StatusService(app.project).config())


@click.command(cls=StackCommand, examples=_ENV_EXAMPLES)
@click.argument("service")
@click.option("--show-secrets", is_flag=True, help="Do not mask secret-looking values.")
@click.pass_obj
def env(app: AppContext, service: str, show_secrets: bool) -> None:
    """Show a service's resolved environment."""
    from stackctl.services.status import StatusService

    app.emit(StatusService(app.project).env(service, show_secrets=show_secrets))
