"""Subcommand modules for stackctl.

Provides register_commands() which uses deferred imports to keep
``stackctl --help`` fast as the codebase grows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    # --- Authoring ---
    from stackctl.commands.check import check
    from stackctl.commands.config_cmd import config_cmd, env
    from stackctl.commands.init_cmd import init_cmd
    from stackctl.commands.plan import plan

    cli.add_command(init_cmd)
    cli.add_command(check)
    cli.add_command(plan)
    cli.add_command(config_cmd)
    cli.add_command(env)

    # --- Lifecycle ---
    from stackctl.commands.lifecycle import build, down, up

    cli.add_command(build)
    cli.add_command(up)
    cli.add_command(down)

    # --- Inspection ---
    from stackctl.commands.doctor import doctor
    from stackctl.commands.status import exec_cmd, logs, ps, stats

    cli.add_command(ps)
    cli.add_command(logs)
    cli.add_command(exec_cmd)
    cli.add_command(stats)
    cli.add_command(doctor)
