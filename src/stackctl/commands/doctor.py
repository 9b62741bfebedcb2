"""Command: troubleshooting diagnostics."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import StackCommand
from stackctl.services.doctor import DIAGNOSTICS

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_DOCTOR_EXAMPLES = """\
  stackctl doctor
  stackctl doctor --only port-conflict --only network
  stackctl -v doctor                 # include HTTP probe results"""


@click.command(cls=StackCommand, examples=_DOCTOR_EXAMPLES)
@click.option(
    "--only",
    multiple=True,
    type=click.Choice(DIAGNOSTICS),
    help="Run only this diagnostic (repeatable).",
)
@click.pass_obj
def doctor(app: AppContext, only: tuple[str, ...]) -> None:
    """Diagnose common reasons a stack fails to start or connect."""
    from stackctl.services.doctor import DoctorService

    app.emit(DoctorService(app.project).doctor(list(only) or None))
