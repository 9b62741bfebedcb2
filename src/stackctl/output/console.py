"""Rich Console factory and theme for stackctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract.  In non-TTY environments
(tests, pipes) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

STACK_THEME = Theme(
    {
        "stack.ok": "bold green",
        "stack.error": "bold red",
        "stack.warning": "bold yellow",
        "stack.op": "bold cyan",
        "stack.key": "dim",
        "stack.service": "bold blue",
        "stack.path": "dim",
        "stack.state.healthy": "green",
        "stack.state.running": "green",
        "stack.state.exited": "cyan",
        "stack.state.starting": "yellow",
        "stack.state.unhealthy": "red",
        "stack.state.failed": "bold red",
        "stack.state.skipped": "magenta",
        "stack.state.missing": "dim",
    }
)

_STATE_STYLES: dict[str, str] = {
    "healthy": "stack.state.healthy",
    "running": "stack.state.running",
    "exited": "stack.state.exited",
    "starting": "stack.state.starting",
    "created": "stack.state.starting",
    "restarting": "stack.state.starting",
    "unhealthy": "stack.state.unhealthy",
    "failed": "stack.state.failed",
    "dead": "stack.state.failed",
    "skipped": "stack.state.skipped",
    "not created": "stack.state.missing",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=STACK_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_state(state: str) -> str:
    """Return the Rich style name for a container or service state."""
    return _STATE_STYLES.get(state, "")
