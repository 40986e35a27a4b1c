"""tapbook validate -- Parse and dry-run playbooks without touching a simulator.

Each playbook is parsed, every action name is checked against the built-in
catalog, and -- when all required inputs can be satisfied -- a dry run
resolves templates and coerces inputs for every step.  No action handler
is ever invoked.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
from rich.markup import escape
from rich.panel import Panel

from tapbook.cli.common import build_config, build_registry, console, fail, parse_key_values
from tapbook.errors import ParseError
from tapbook.playbook.interpreter import PlaybookInterpreter, RunOptions
from tapbook.playbook.parser import load_playbook
from tapbook.playbook.registry import ActionRegistry


def _sev_style(severity: str) -> str:
    return {"error": "bold red", "warning": "yellow", "info": "dim"}.get(severity, "")


def _validate_playbook(
    path: Path,
    registry: ActionRegistry,
    inputs: dict[str, str],
) -> list[dict[str, Any]]:
    """Validate one playbook file. Returns list of issue dicts."""
    issues: list[dict[str, Any]] = []

    try:
        playbook = load_playbook(path)
    except ParseError as exc:
        return [{"severity": "error", "field": "parse", "message": exc.message}]

    seen_names: set[str] = set()
    for step_path, step in playbook.iter_steps():
        if step.action not in registry:
            issues.append(
                {
                    "severity": "error",
                    "field": f"steps.{step_path}.action",
                    "message": f"Action '{step.action}' is not registered",
                }
            )
        if step.name:
            if step.name in seen_names:
                issues.append(
                    {
                        "severity": "warning",
                        "field": f"steps.{step_path}.name",
                        "message": f"Duplicate step name: '{step.name}'",
                    }
                )
            seen_names.add(step.name)
        if step.store_as and step.store_as in playbook.variables:
            issues.append(
                {
                    "severity": "warning",
                    "field": f"steps.{step_path}.store_as",
                    "message": f"store_as '{step.store_as}' overwrites a declared variable",
                }
            )

    missing = [
        name
        for name, spec in playbook.inputs.items()
        if spec.required and spec.default is None and name not in inputs
    ]
    if missing:
        issues.append(
            {
                "severity": "warning",
                "field": "inputs",
                "message": f"Dry run skipped: required input(s) {', '.join(missing)} not given (use -i key=value)",
            }
        )
        return issues

    result = asyncio.run(
        PlaybookInterpreter(registry).run(playbook, inputs=inputs, options=RunOptions(dry_run=True))
    )
    for record in result.steps:
        # Unknown actions were already reported above
        if record.status == "failed" and record.error_kind != "unknown_action":
            issues.append(
                {
                    "severity": "error",
                    "field": f"steps.{record.path}",
                    "message": record.error or "Step failed in dry run",
                }
            )
    return issues


def _print_file_result(path: Path, issues: list[dict[str, Any]]) -> None:
    if not issues:
        console.print(f"  [green]✓[/green] {path}", highlight=False)
        return
    has_error = any(i["severity"] == "error" for i in issues)
    icon = "[red]✗[/red]" if has_error else "[yellow]![/yellow]"
    console.print(f"  {icon} {path}", highlight=False)
    for issue in issues:
        style = _sev_style(issue["severity"])
        console.print(
            f"      [{style}]{issue['severity']}[/{style}] [dim]{issue['field']}[/dim]  {escape(issue['message'])}",
            highlight=False,
        )


# ── CLI command ───────────────────────────────────────────────────────────


def validate(
    playbooks: Optional[list[Path]] = typer.Argument(
        None,
        help="Playbook files. Omit to validate everything in .tapbook/playbooks/.",
    ),
    inputs: Optional[list[str]] = typer.Option(
        None,
        "--input",
        "-i",
        help="Playbook input as key=value, used for the dry run. Repeatable.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 on warnings as well as errors (default: exit 1 on errors only).",
    ),
) -> None:
    """Validate playbooks without executing any action.

    \b
    Examples:
      tapbook validate                       # Everything in .tapbook/playbooks/
      tapbook validate login.yaml -i user=demo
      tapbook validate --strict              # Fail on warnings too
    """
    config = build_config()
    dry_run_inputs = parse_key_values(inputs)

    files = list(playbooks or [])
    if not files and config.playbooks_dir.is_dir():
        files = sorted(config.playbooks_dir.glob("*.yaml")) + sorted(config.playbooks_dir.glob("*.yml"))
    if not files:
        console.print(
            Panel(
                "[yellow]No playbooks found to validate.[/yellow]\n\n"
                f"Looked in: {config.playbooks_dir}",
                title="No Files Found",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=0)

    missing = [str(p) for p in files if not p.is_file()]
    if missing:
        fail("Playbook Not Found", "[red]No such file:[/red]\n  " + "\n  ".join(missing))

    registry = build_registry(config)
    total_errors = 0
    total_warnings = 0
    for path in files:
        issues = _validate_playbook(path, registry, dry_run_inputs)
        total_errors += sum(1 for i in issues if i["severity"] == "error")
        total_warnings += sum(1 for i in issues if i["severity"] == "warning")
        _print_file_result(path, issues)

    # ── Summary ────────────────────────────────────────────────────────
    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel("[bold green]All playbooks valid. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  "
                f"{total_errors} error(s), {total_warnings} warning(s)",
                border_style="red",
            )
        )
    else:
        console.print(
            Panel(
                f"[yellow]Valid with warnings.[/yellow]  {total_warnings} warning(s)",
                border_style="yellow",
            )
        )

    if total_errors > 0 or (strict and total_warnings > 0):
        raise typer.Exit(code=1)
