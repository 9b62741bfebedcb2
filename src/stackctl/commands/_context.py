"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy Project initialization and centralized
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from stackctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from stackctl.config.settings import StackSettings
    from stackctl.infrastructure.project import Project
    from stackctl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``.  The project is lazily
    initialized on first use so ``--help``, ``--version`` and ``init``
    never read the composition file or discover plugins.
    """

    def __init__(self, settings: StackSettings) -> None:
        self.settings = settings
        self._project: Project | None = None

        # Configure structured logging
        from stackctl.config.logging import configure_logging

        configure_logging(
            verbose=settings.verbose,
            log_json=settings.log_json,
            json_output=settings.json_output,
        )

        # Enable telemetry context var when verbose
        if settings.verbose:
            from stackctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def project(self) -> Project:
        """The project instance (created lazily on first access)."""
        if self._project is None:
            from stackctl.config.logging import bind_project
            from stackctl.infrastructure.project import Project

            self._project = Project(self.settings)
            self._project.init_event_bus(sync=self.settings.sync)
            bind_project(self._project.name)
        return self._project

    def close(self) -> None:
        """Shut down the event bus (registered as a Click close callback)."""
        if self._project is not None:
            self._project.close()

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
