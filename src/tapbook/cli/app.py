"""tapbook CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from tapbook import __version__

TAGLINE = "Declarative UI automation playbooks for the iOS Simulator."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tapbook v{__version__}", style="bold")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="tapbook",
    help=TAGLINE,
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show tapbook version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """tapbook -- run YAML playbooks of taps, scrolls and swipes against an iOS Simulator."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────
# Each subcommand is a separate module to keep this file lean.

from tapbook.cli.actions_cmd import actions  # noqa: E402
from tapbook.cli.gestures import do, inspect, scroll, swipe, tap  # noqa: E402
from tapbook.cli.run import run  # noqa: E402
from tapbook.cli.validate import validate  # noqa: E402

app.command(name="run", help="Run a playbook.")(run)
app.command(name="validate", help="Validate playbooks without executing actions.")(validate)
app.command(name="do", help="Run one action from a shorthand command.")(do)
app.command(name="tap", help="Tap an element.")(tap)
app.command(name="scroll", help="Scroll, or scroll until an element is visible.")(scroll)
app.command(name="swipe", help="Swipe in a direction.")(swipe)
app.command(name="inspect", help="Inspect the current UI tree.")(inspect)
app.command(name="actions", help="List available actions.")(actions)
