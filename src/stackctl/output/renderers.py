"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text
from ruamel.yaml import YAML

from stackctl.domain.durations import format_duration
from stackctl.output.console import create_console, get_output, style_for_state

if TYPE_CHECKING:
    from rich.console import Console

    from stackctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    if result.op in ("logs", "exec"):
        return str(result.data.get("output", "")).rstrip("\n")

    # For list results, return service names only
    items = result.data.get("items") or result.data.get("services")
    if items and isinstance(items, list):
        return "\n".join(name for name in (_extract_service(item) for item in items) if name)

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_service(item: Any) -> str:
    if isinstance(item, dict):
        for key in ("service", "name", "container"):
            val = item.get(key)
            if val is not None:
                return str(val)
        return ""
    return str(item)


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK/ERROR status line."""
    label = Text("OK", style="stack.ok")
    op = Text(f"  {result.op}", style="stack.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="stack.key")
    if key in ("service", "project", "name"):
        v = Text(str(value), style="stack.service")
    elif key == "path":
        v = Text(str(value), style="stack.path")
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _state(state: str | None) -> Text:
    text = state or "-"
    return Text(text, style=style_for_state(text))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}"
    if span_data.get("annotations"):
        extras = [f"{ak}={av}" for ak, av in span_data["annotations"].items()]
        line += f"  ({', '.join(extras)})"

    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _service_table(services: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    """Per-service outcome of ``up``."""
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Service", style="stack.service", no_wrap=True)
    table.add_column("State")
    table.add_column("Waited", justify="right")
    table.add_column("Reason")
    if verbose:
        table.add_column("Container", style="dim")
    for svc in services:
        row: list[Any] = [
            str(svc.get("service", "")),
            _state(svc.get("state")),
            format_duration(float(svc.get("waited_seconds", 0.0))),
            str(svc.get("reason") or ("reused" if svc.get("reused") else "")),
        ]
        if verbose:
            row.append(str(svc.get("container", "")))
        table.add_row(*row)
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="stack.error")
    op = Text(f"  {result.op}", style="stack.op")
    sep = Text(" — ")
    console.print(label, op, sep, msg)

    # Failed results may still carry the partial outcome.
    if result.op == "up" and result.data.get("services"):
        console.print(_service_table(result.data["services"], verbose=verbose))
    elif result.op == "check" and result.data.get("issues"):
        _render_issues(result.data["issues"], console, verbose=verbose)

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Lint and diagnostics ──────────────────────────────────────────────


def _render_issues(issues: list[dict[str, Any]], console: Console, *, verbose: bool = False) -> None:
    severity_styles = {"error": "stack.error", "warning": "stack.warning"}

    # Group by category
    by_category: dict[str, list[dict[str, Any]]] = {}
    for issue in issues:
        cat = str(issue.get("category", "unknown"))
        by_category.setdefault(cat, []).append(issue)

    for cat, cat_issues in by_category.items():
        console.print(f"\n[bold]{cat}[/bold]")
        for issue in cat_issues:
            sev = str(issue.get("severity", "warning"))
            style = severity_styles.get(sev, "")
            prefix = f"[{style}]{sev}[/{style}]" if style else sev
            service = f" [{issue['service']}]" if issue.get("service") else ""
            line = Text.from_markup(prefix)
            line.append(f"{service}: {issue.get('message', '')}")
            console.print(Text("  "), line, sep="")
            if verbose:
                console.print(f"    rule: {issue.get('rule', '')}")

    errors = sum(1 for i in issues if i.get("severity") == "error")
    console.print(f"\n{errors} errors, {len(issues) - errors} warnings")


def _render_check(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render check results with issues grouped by category."""
    issues = result.data.get("issues", [])
    if not issues:
        console.print("[stack.ok]OK[/stack.ok]  No issues found.")
    else:
        _render_issues(issues, console, verbose=verbose)
    if verbose:
        _render_meta(console, result)


def _render_doctor(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render doctor diagnostics, one block per diagnostic."""
    status_styles = {"ok": "stack.ok", "warning": "stack.warning", "error": "stack.error"}
    for diag in result.data.get("diagnostics", []):
        status = str(diag.get("status", ""))
        style = status_styles.get(status, "")
        console.print(Text(f"{status.upper():<8}", style=style), Text(str(diag.get("name", "")), style="bold"))
        if status != "ok" or verbose:
            console.print(Text(f"  symptom: {diag.get('symptom', '')}", style="dim"))
        console.print(Text(f"  {diag.get('detail', '')}"))
        if diag.get("remedy"):
            console.print(Text(f"  remedy: {diag['remedy']}"))
        for probe in diag.get("probes", []) if verbose else []:
            mark = "ok" if probe.get("ok") else "failed"
            console.print(Text(f"  probe {probe.get('url')}: {mark} ({probe.get('detail')})"))

    errors = result.data.get("error_count", 0)
    warnings = result.data.get("warning_count", 0)
    console.print(f"\n{errors} errors, {warnings} warnings")
    if verbose:
        _render_meta(console, result)


# ── Orchestration renderers ───────────────────────────────────────────


def _render_plan(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the startup plan as numbered generations with gates."""
    d = result.data
    _field(console, "project", d.get("project", ""))
    by_step: dict[int, list[dict[str, Any]]] = {}
    for svc in d.get("services", []):
        by_step.setdefault(int(svc.get("step", 0)), []).append(svc)

    for step, services in sorted(by_step.items()):
        console.print(f"\n[bold]step {step}[/bold]")
        for svc in services:
            waits = svc.get("waits_for") or {}
            line = Text("  ")
            line.append(str(svc.get("service", "")), style="stack.service")
            deadline = format_duration(float(svc.get("deadline_seconds", 0)))
            line.append(f"  gate: {svc.get('gate', 'running')} (up to {deadline})")
            if waits:
                line.append("  after: " + ", ".join(f"{dep} ({cond})" for dep, cond in waits.items()))
            console.print(line)
            if verbose and svc.get("healthcheck"):
                console.print(Text(f"    healthcheck: {svc['healthcheck']}", style="dim"))

    console.print(f"\nshutdown: {' -> '.join(d.get('shutdown_order', []))}")
    if verbose:
        _render_meta(console, result)


def _render_up(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "project", result.data.get("project", ""))
    built = result.data.get("built", [])
    if built:
        _field(console, "built", ", ".join(built))
    console.print(_service_table(result.data.get("services", []), verbose=verbose))
    if verbose:
        _render_meta(console, result)


def _render_down(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    d = result.data
    _field(console, "project", d.get("project", ""))
    _field(console, "removed", d.get("count", len(d.get("removed", []))))
    for key in ("removed", "networks", "volumes"):
        for name in d.get(key, []) if verbose else []:
            console.print(f"    {key[:-1]}: {name}")
    if verbose:
        _render_meta(console, result)


def _render_build(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    built = result.data.get("built", [])
    _field(console, "built", ", ".join(built) if built else "nothing")


# ── Status renderers ──────────────────────────────────────────────────


def _render_ps(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Service", style="stack.service", no_wrap=True)
    table.add_column("Container")
    table.add_column("State")
    table.add_column("Health")
    table.add_column("Ports")
    for item in items:
        state = str(item.get("state", ""))
        if item.get("exit_code") is not None:
            state = f"{state} ({item['exit_code']})"
        table.add_row(
            str(item.get("service", "")),
            str(item.get("container", "")),
            Text(state, style=style_for_state(str(item.get("state", "")))),
            _state(item.get("health")),
            ", ".join(item.get("ports", [])),
        )
    console.print(table)
    console.print(f"\n{result.data.get('running', 0)}/{result.data.get('count', len(items))} running")


def _render_output(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render raw engine output (logs, exec) without markup."""
    console.print(str(result.data.get("output", "")).rstrip("\n"), markup=False, soft_wrap=True)


def _render_stats(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Container", style="stack.service", no_wrap=True)
    table.add_column("CPU", justify="right")
    table.add_column("Memory")
    table.add_column("Net I/O")
    table.add_column("Block I/O")
    for item in items:
        table.add_row(
            str(item.get("Name", "")),
            str(item.get("CPUPerc", "")),
            str(item.get("MemUsage", "")),
            str(item.get("NetIO", "")),
            str(item.get("BlockIO", "")),
        )
    console.print(table)


def _render_config(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render the resolved composition as YAML."""
    yaml = YAML()
    yaml.default_flow_style = False
    buf = StringIO()
    yaml.dump(result.data.get("compose", {}), buf)
    console.print(buf.getvalue().rstrip("\n"), markup=False, soft_wrap=True)


def _render_env(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    _field(console, "service", d.get("service", ""))
    for key, value in d.get("environment", {}).items():
        shown = "(inherited)" if value is None else value
        console.print(Text(f"  {key}=", style="stack.key"), Text(str(shown)), sep="")
    ds = d.get("datasource")
    if ds:
        console.print(Text("\n  datasource:", style="bold"))
        for key in ("scheme", "host", "port", "database", "username"):
            if ds.get(key) is not None:
                console.print(f"    {key}: {ds[key]}")


def _render_init(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render init results with project details and file manifest."""
    _status_line(console, result)
    d = result.data
    for key in ("path", "name", "database"):
        if key in d:
            _field(console, key, d[key])
    files = d.get("files", [])
    _field(console, "files", len(files))
    for f in files:
        console.print(f"    {f}")
    console.print("\nNext: stackctl check && stackctl up")


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, _json.dumps(value, separators=(",", ":")))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "init": _render_init,
    "check": _render_check,
    "doctor": _render_doctor,
    "plan": _render_plan,
    "up": _render_up,
    "down": _render_down,
    "build": _render_build,
    "ps": _render_ps,
    "logs": _render_output,
    "exec": _render_output,
    "stats": _render_stats,
    "config": _render_config,
    "env": _render_env,
}
