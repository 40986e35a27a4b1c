"""Helpers shared by the tapbook subcommands: config, registry and output."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tapbook.actions.ios import create_default_registry, simulator_driver_factory
from tapbook.config import TapbookConfig, TapbookConfigError, load_config
from tapbook.playbook.interpreter import RunOptions, StepRecord, execute_action
from tapbook.playbook.registry import ActionRegistry

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

OUTPUT_FORMATS = ("text", "json")

# error kinds that mean the command itself was malformed
_USAGE_KINDS = frozenset({"validation", "unknown_action", "parse"})


def fail(title: str, message: str, code: int = 2) -> NoReturn:
    """Print an error panel and exit."""
    console.print(
        Panel(
            message,
            title=f"[red]{title}[/red]",
            border_style="red",
        )
    )
    raise typer.Exit(code=code)


def check_output_format(output_format: str) -> None:
    if output_format not in OUTPUT_FORMATS:
        fail("Config Error", f"[red]Invalid output format:[/red] {output_format}\n\nValid formats: text, json")


def build_config(
    app: str | None = None,
    simulator: str | None = None,
    step_timeout: float | None = None,
) -> TapbookConfig:
    """Load ``.tapbook/config.yaml`` (if any) and apply CLI overrides."""
    try:
        config = load_config()
    except TapbookConfigError as exc:
        fail("Config Error", f"[red]{exc}[/red]")

    # CLI options override config file values
    if app:
        config.bundle_id = app
    if simulator:
        config.simulator = simulator
    if step_timeout is not None:
        config.step_timeout = step_timeout
    return config


def build_registry(config: TapbookConfig) -> ActionRegistry:
    return create_default_registry(simulator_driver_factory(config), evidence_dir=config.evidence_dir)


def parse_key_values(pairs: list[str] | None) -> dict[str, str]:
    """``["user=demo", "count=3"]`` -> ``{"user": "demo", "count": "3"}``."""
    values: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            fail("Input Error", f"[red]Invalid input:[/red] {pair}\n\nExpected format: key=value")
        values[key.strip()] = value
    return values


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def print_step_record(record: StepRecord, total: int | None = None) -> None:
    """Print a single step result line."""
    if record.status == "passed":
        icon = "[bold green]✓[/bold green]"
        status = "[green]PASS[/green]"
    elif record.status == "failed":
        icon = "[bold red]✗[/bold red]"
        status = "[red]FAIL[/red]"
    else:
        icon = "[dim]-[/dim]"
        status = "[dim]SKIP[/dim]"

    depth = record.path.count(".on_failure.")
    indent = "  " * (depth + 1)
    label = f"Step {record.path}" + (f"/{total}" if total and depth == 0 else "")
    console.print(
        f"{indent}{icon} {label}: {escape(record.name)}  {status}  [dim]{record.duration_ms / 1000:.1f}s[/dim]",
        highlight=False,
    )
    if record.status == "failed" and record.error:
        error_short = record.error if len(record.error) <= 160 else record.error[:157] + "..."
        console.print(f"{indent}  [dim red]{escape(error_short)}[/dim red]", highlight=False)
    elif record.status == "skipped" and record.message:
        console.print(f"{indent}  [dim]{escape(record.message)}[/dim]", highlight=False)


def _print_elements(elements: list[dict[str, Any]]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Identifier")
    table.add_column("Label")
    table.add_column("Frame", justify="right")
    table.add_column("State")
    for el in elements:
        frame = el.get("frame", {})
        state = []
        if not el.get("enabled", True):
            state.append("disabled")
        if not el.get("visible", True):
            state.append("hidden")
        table.add_row(
            escape(el.get("type", "")),
            escape(el.get("identifier") or ""),
            escape(el.get("label") or ""),
            f"{frame.get('x', 0):g},{frame.get('y', 0):g} {frame.get('width', 0):g}x{frame.get('height', 0):g}",
            ", ".join(state),
        )
    console.print(table)


def run_single_action(
    config: TapbookConfig,
    action: str,
    inputs: dict[str, Any],
    output_format: str = "text",
) -> None:
    """Execute one action directly, print the outcome and exit with its status."""
    check_output_format(output_format)
    registry = build_registry(config)
    options = RunOptions(cwd=Path.cwd(), step_timeout=config.step_timeout)
    try:
        record = asyncio.run(execute_action(registry, action, inputs, options))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        raise typer.Exit(code=1)

    if output_format == "json":
        output_console.print(to_json(record.to_dict()), markup=False, highlight=False, soft_wrap=True)
    elif record.status == "passed":
        console.print(
            f"[bold green]✓[/bold green] {action}: {escape(record.message or 'done')}  "
            f"[dim]{record.duration_ms:.0f}ms[/dim]",
            highlight=False,
        )
        if isinstance(record.data, dict):
            for warning in record.data.get("warnings", []):
                console.print(f"  [yellow]warning:[/yellow] {escape(str(warning))}", highlight=False)
            if record.data.get("elements"):
                _print_elements(record.data["elements"])
    else:
        lines = [f"[red]{escape(record.error or '')}[/red]"]
        if isinstance(record.data, dict) and record.data.get("screenshot_path"):
            lines.append(f"\nScreenshot: {record.data['screenshot_path']}")
        fail(
            f"{action} failed ({record.error_kind})",
            "\n".join(lines),
            code=2 if record.error_kind in _USAGE_KINDS else 1,
        )

    if record.status != "passed":
        raise typer.Exit(code=2 if record.error_kind in _USAGE_KINDS else 1)
