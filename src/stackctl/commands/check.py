"""Command: static consistency check."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_CHECK_EXAMPLES = """\
  stackctl check
  stackctl check --errors-only
  stackctl check --strict            # exit 1 on any error (CI)
  stackctl --json check | jq '.data.issues[] | .message'"""


@click.command(cls=StackCommand, examples=_CHECK_EXAMPLES)
@click.option(
    "--min-severity",
    type=click.Choice(["warning", "error"]),
    default="warning",
    show_default=True,
    help="Hide issues below this severity.",
)
@click.option("--errors-only", is_flag=True, help="Shorthand for --min-severity error.")
@click.option("--strict", is_flag=True, help="Fail when any error is found.")
@click.pass_obj
def check(app: AppContext, min_severity: str, errors_only: bool, strict: bool) -> None:
    """Check the stack configuration for consistency problems."""
    from stackctl.services.check import CheckService

    severity = "error" if errors_only else min_severity
    app.emit(CheckService(app.project).check(min_severity=severity, strict=strict))
