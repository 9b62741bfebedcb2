"""Commands: ps, logs, exec, stats."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_PS_EXAMPLES = """\
  stackctl ps
  stackctl -q ps                     # service names only"""

_LOGS_EXAMPLES = """\
  stackctl logs backend
  stackctl logs db --tail 50"""

_EXEC_EXAMPLES = """\
  stackctl exec db psql -U app -c 'select 1'
  stackctl exec backend -- env"""

_STATS_EXAMPLES = """\
  stackctl stats
  stackctl --json stats"""


@click.command(cls=StackCommand, examples=_PS_EXAMPLES)
@click.pass_obj
def ps(app: AppContext) -> None:
    """List the project's services and their container state."""
    from stackctl.services.status import StatusService

    app.emit(StatusService(app.project).ps())


@click.command(cls=StackCommand, examples=_LOGS_EXAMPLES)
@click.argument("service")
@click.option("--tail", type=int, default=None, help="Only the last N lines.")
@click.pass_obj
def logs(app: AppContext, service: str, tail: int | None) -> None:
    """Print a service container's logs."""
    from stackctl.services.status import StatusService

    app.emit(StatusService(app.project).logs(service, tail=tail))


@click.command(
    "exec",
    cls=StackCommand,
    examples=_EXEC_EXAMPLES,
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("service")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def exec_cmd(app: AppContext, service: str, command: tuple[str, ...]) -> None:
    """Run a command inside a running service container.

    Exits with the command's exit code.
    """
    from stackctl.services.status import StatusService

    argv = list(command)
    if argv and argv[0] == "--":
        argv = argv[1:]
    result = StatusService(app.project).exec(service, argv)
    app.emit(result)
    code = result.data.get("exit_code", 0)
    if code:
        raise SystemExit(code)


@click.command(cls=StackCommand, examples=_STATS_EXAMPLES)
@click.pass_obj
def stats(app: AppContext) -> None:
    """Show resource usage of running project containers."""
    from stackctl.services.status import StatusService

    app.emit(StatusService(app.project).stats())
