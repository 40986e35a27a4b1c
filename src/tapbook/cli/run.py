"""tapbook run -- Execute a playbook against an iOS Simulator.

Resolves config, parses the playbook, runs it through the interpreter with
the built-in ``ios.*`` actions, and prints per-step results plus a summary
panel (or the full run result as JSON).
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.panel import Panel

from tapbook.cli.common import (
    build_config,
    build_registry,
    check_output_format,
    console,
    fail,
    output_console,
    parse_key_values,
    print_step_record,
    to_json,
)
from tapbook.config import TapbookConfig, TapbookConfigError
from tapbook.errors import ParseError
from tapbook.playbook.interpreter import PlaybookInterpreter, PlaybookRunResult, RunOptions
from tapbook.playbook.parser import Playbook, load_playbook

logger = logging.getLogger("tapbook.cli.run")


def _print_run_header(playbook: Playbook, config: TapbookConfig, dry_run: bool) -> None:
    """Print a styled header before the run starts."""
    info_lines = [
        f"[bold]Playbook:[/bold]  {escape(playbook.name)}",
        f"[bold]Steps:[/bold]     {len(playbook.steps)}",
        f"[bold]App:[/bold]       {config.bundle_id or 'not set'}",
        f"[bold]Simulator:[/bold] {config.simulator or config.device_name}",
    ]
    if dry_run:
        info_lines.append("[bold]Mode:[/bold]      dry run (no actions executed)")
    if config.step_timeout:
        info_lines.append(f"[bold]Timeout:[/bold]   {config.step_timeout:g}s per step")
    console.print()
    console.print(
        Panel(
            "\n".join(info_lines),
            title="[bold cyan]tapbook run[/bold cyan]",
            border_style="cyan",
        )
    )
    console.print()


def _print_summary_panel(result: PlaybookRunResult) -> None:
    """Print the final summary panel."""
    if result.passed:
        border = "green"
        verdict = "[bold green]PLAYBOOK PASSED[/bold green]"
    else:
        border = "red"
        verdict = "[bold red]ABORTED[/bold red]" if result.aborted else "[bold red]PLAYBOOK FAILED[/bold red]"

    summary_lines = [
        verdict,
        "",
        f"  Steps:     {result.passed_steps}/{result.total_steps} passed",
        f"  Failed:    {result.failed_steps}",
        f"  Skipped:   {result.skipped_steps}",
        f"  Duration:  {result.duration_ms / 1000:.1f}s",
    ]
    if result.error and not result.passed:
        summary_lines += ["", f"  [dim]{escape(result.error)}[/dim]"]

    console.print()
    console.print(Panel("\n".join(summary_lines), border_style=border))
    console.print()


def run(
    playbook: str = typer.Argument(
        ...,
        help="Playbook file, or a name in .tapbook/playbooks/.",
    ),
    inputs: Optional[list[str]] = typer.Option(
        None,
        "--input",
        "-i",
        help="Playbook input as key=value. Repeatable.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Resolve templates and validate inputs without executing any action.",
    ),
    step_timeout: Optional[float] = typer.Option(
        None,
        "--step-timeout",
        help="Fail any step that runs longer than this many seconds.",
    ),
    app: Optional[str] = typer.Option(
        None,
        "--app",
        help="App bundle ID. Overrides bundle_id from config.yaml.",
    ),
    simulator: Optional[str] = typer.Option(
        None,
        "--simulator",
        help="Simulator name or UDID. Overrides config.yaml.",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.",
    ),
) -> None:
    """Run a playbook step by step.

    \b
    Examples:
      tapbook run login                      # .tapbook/playbooks/login.yaml
      tapbook run flows/checkout.yaml -i user=demo
      tapbook run login --dry-run -o json
    """
    check_output_format(output_format)
    if step_timeout is not None and step_timeout <= 0:
        fail("Config Error", f"[red]--step-timeout must be positive, got:[/red] {step_timeout}")

    config = build_config(app=app, simulator=simulator, step_timeout=step_timeout)

    try:
        path = config.resolve_playbook(playbook)
    except TapbookConfigError as exc:
        fail("Playbook Not Found", f"[red]{escape(str(exc))}[/red]")

    try:
        parsed = load_playbook(path)
    except ParseError as exc:
        fail("Parse Error", f"[red]{escape(str(exc))}[/red]")

    run_inputs = parse_key_values(inputs)
    registry = build_registry(config)

    text_mode = output_format == "text"
    if text_mode:
        _print_run_header(parsed, config, dry_run)

    options = RunOptions(
        cwd=Path.cwd(),
        dry_run=dry_run,
        step_timeout=config.step_timeout,
        on_step_complete=(lambda record: print_step_record(record, total=len(parsed.steps))) if text_mode else None,
    )

    try:
        result = asyncio.run(PlaybookInterpreter(registry).run(parsed, inputs=run_inputs, options=options))
    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user.[/yellow]")
        raise typer.Exit(code=1)

    if text_mode:
        _print_summary_panel(result)
    else:
        output_console.print(to_json(result.to_dict()), markup=False, highlight=False, soft_wrap=True)

    logger.debug("Run finished: passed=%s", result.passed)
    if not result.passed:
        # Rejected inputs are a usage error: nothing ran
        inputs_rejected = result.failed_steps == 0 and not result.aborted and result.error is not None
        raise typer.Exit(code=2 if inputs_rejected else 1)
