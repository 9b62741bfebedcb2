"""Commands: build, up, down."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.commands._base import DURATION, StackCommand

if TYPE_CHECKING:
    from stackctl.commands._context import AppContext

_BUILD_EXAMPLES = """\
  stackctl build
  stackctl build backend --no-cache"""

_UP_EXAMPLES = """\
  stackctl up
  stackctl up --build
  stackctl up backend                # backend and its dependencies
  stackctl up --wait-timeout 2m"""

_DOWN_EXAMPLES = """\
  stackctl down
  stackctl down --volumes            # also delete database data"""


@click.command(cls=StackCommand, examples=_BUILD_EXAMPLES)
@click.argument("services", nargs=-1)
@click.option("--no-cache", is_flag=True, help="Build without the engine's layer cache.")
@click.pass_obj
def build(app: AppContext, services: tuple[str, ...], no_cache: bool) -> None:
    """Build images for services with a build recipe."""
    from stackctl.services.orchestrate import OrchestrationService

    app.emit(OrchestrationService(app.project).build(list(services) or None, no_cache=no_cache))


@click.command(cls=StackCommand, examples=_UP_EXAMPLES)
@click.argument("services", nargs=-1)
@click.option("--build", "build_images", is_flag=True, help="Build images before starting.")
@click.option("--no-cache", is_flag=True, help="With --build, ignore the layer cache.")
@click.option(
    "--wait-timeout",
    type=DURATION,
    default=None,
    help="Override every service's gate deadline (e.g. 90s, 2m).",
)
@click.pass_obj
def up(
    app: AppContext,
    services: tuple[str, ...],
    build_images: bool,
    no_cache: bool,
    wait_timeout: float | None,
) -> None:
    """Start services in dependency order, waiting for each to be ready."""
    from stackctl.services.orchestrate import OrchestrationService

    app.emit(
        OrchestrationService(app.project).up(
            list(services) or None,
            build=build_images,
            no_cache=no_cache,
            wait_timeout=wait_timeout,
        )
    )


@click.command(cls=StackCommand, examples=_DOWN_EXAMPLES)
@click.option("-v", "--volumes", is_flag=True, help="Remove named volumes too.")
@click.pass_obj
def down(app: AppContext, volumes: bool) -> None:
    """Stop and remove the project's containers and networks."""
    from stackctl.services.orchestrate import OrchestrationService

    app.emit(OrchestrationService(app.project).down(volumes=volumes))
