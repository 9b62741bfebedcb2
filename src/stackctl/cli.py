"""Root CLI group for stackctl with global flags and command registration."""

from __future__ import annotations

import click

from stackctl import __version__
from stackctl.commands import register_commands
from stackctl.commands._base import StackGroup
from stackctl.commands._context import AppContext
from stackctl.config.settings import StackSettings

_CLI_EXAMPLES = """\
  stackctl init shop && cd shop
  stackctl check
  stackctl up --build
  stackctl ps
  stackctl doctor
  stackctl down"""


@click.group(cls=StackGroup, examples=_CLI_EXAMPLES, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="stackctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option("-f", "--file", "compose_file", default=None, help="Composition file to use.")
@click.option("-p", "--project-name", default=None, help="Override the project name.")
@click.option("--sync", is_flag=True, help="Force synchronous event dispatch.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    compose_file: str | None,
    project_name: str | None,
    sync: bool,
) -> None:
    """stackctl — bring up and check database + API + frontend stacks."""
    ctx.ensure_object(dict)
    settings = StackSettings.from_cli(
        config_path=config_path,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
        compose_file=compose_file,
        project_name=project_name,
        sync=sync,
    )
    app = AppContext(settings)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
