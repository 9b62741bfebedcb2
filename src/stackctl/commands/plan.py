"""Command: startup plan."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_PLAN_EXAMPLES = """\
  stackctl plan
  stackctl plan frontend             # frontend and everything it needs
  stackctl --json plan"""


@click.command(cls=StackCommand, examples=_PLAN_EXAMPLES)
@click.argument("services", nargs=-1)
@click.pass_obj
def plan(app: AppContext, services: tuple[str, ...]) -> None:
    """Show startup order and the gate each service waits at."""
    from stackctl.services.plan import PlanService

    app.emit(PlanService(app.project).plan(list(services) or None))
