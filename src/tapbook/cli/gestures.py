"""Direct action commands: ``tapbook do``, ``tap``, ``scroll``, ``swipe``, ``inspect``.

Each command runs exactly one action through the same lookup, coercion and
handler path a playbook step uses.
"""

from __future__ import annotations

from typing import Any, Optional

import typer
from rich.markup import escape

from tapbook.cli.common import build_config, fail, run_single_action
from tapbook.errors import ParseError
from tapbook.playbook.parser import parse_shorthand

_APP_HELP = "App bundle ID. Overrides bundle_id from config.yaml."
_SIMULATOR_HELP = "Simulator name or UDID. Overrides config.yaml."
_OUTPUT_HELP = "Output format: text or json."


def _compact(**inputs: Any) -> dict[str, Any]:
    return {k: v for k, v in inputs.items() if v is not None}


def do(
    command: str = typer.Argument(..., help='Shorthand, e.g. "ios.tap --target #login".'),
    app: Optional[str] = typer.Option(None, "--app", help=_APP_HELP),
    simulator: Optional[str] = typer.Option(None, "--simulator", help=_SIMULATOR_HELP),
    output_format: str = typer.Option("text", "--output", "-o", help=_OUTPUT_HELP),
) -> None:
    """Run any registered action from a one-line shorthand.

    \b
    Examples:
      tapbook do "ios.tap --target #login_button"
      tapbook do "ios.type --text 'hello world' --into #search --clear"
    """
    try:
        shorthand = parse_shorthand(command)
    except ParseError as exc:
        fail("Parse Error", f"[red]{escape(str(exc))}[/red]")
    config = build_config(app=app, simulator=simulator)
    run_single_action(config, shorthand.action, shorthand.inputs or {}, output_format)


def tap(
    target: str = typer.Argument(..., help='#identifier, "label" or x,y.'),
    double: bool = typer.Option(False, "--double", help="Double-tap."),
    long_press: Optional[float] = typer.Option(None, "--long-press", help="Hold for this many seconds."),
    app: Optional[str] = typer.Option(None, "--app", help=_APP_HELP),
    simulator: Optional[str] = typer.Option(None, "--simulator", help=_SIMULATOR_HELP),
    output_format: str = typer.Option("text", "--output", "-o", help=_OUTPUT_HELP),
) -> None:
    """Tap an element."""
    config = build_config(app=app, simulator=simulator)
    inputs = _compact(target=target, double=double or None, long_press=long_press)
    run_single_action(config, "ios.tap", inputs, output_format)


def scroll(
    direction: Optional[str] = typer.Argument(None, help="up, down, left or right."),
    to: Optional[str] = typer.Option(None, "--to", help="Scroll until this element is visible."),
    within: Optional[str] = typer.Option(None, "--in", help="Container to scroll within."),
    distance: Optional[float] = typer.Option(None, "--distance", help="Fraction of the container (0-1)."),
    attempts: Optional[int] = typer.Option(None, "--attempts", help="Max scroll gestures when using --to."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Time budget in ms when using --to."),
    app: Optional[str] = typer.Option(None, "--app", help=_APP_HELP),
    simulator: Optional[str] = typer.Option(None, "--simulator", help=_SIMULATOR_HELP),
    output_format: str = typer.Option("text", "--output", "-o", help=_OUTPUT_HELP),
) -> None:
    """Scroll in a direction, or until an element is visible.

    \b
    Examples:
      tapbook scroll down
      tapbook scroll --to "#footer" --attempts 5
      tapbook scroll up --in "#results_list"
    """
    if not direction and not to:
        fail("Usage Error", "Specify a DIRECTION or --to TARGET.")
    config = build_config(app=app, simulator=simulator)
    inputs = _compact(
        direction=direction,
        to=to,
        distance=distance,
        attempts=attempts,
        timeout=timeout,
        **{"in": within},
    )
    run_single_action(config, "ios.scroll", inputs, output_format)


def swipe(
    direction: str = typer.Argument(..., help="up, down, left or right."),
    source: Optional[str] = typer.Option(None, "--from", help="Element to start the swipe on."),
    velocity: str = typer.Option("normal", "--velocity", help="slow, normal or fast."),
    app: Optional[str] = typer.Option(None, "--app", help=_APP_HELP),
    simulator: Optional[str] = typer.Option(None, "--simulator", help=_SIMULATOR_HELP),
    output_format: str = typer.Option("text", "--output", "-o", help=_OUTPUT_HELP),
) -> None:
    """Swipe across the screen or an element."""
    config = build_config(app=app, simulator=simulator)
    inputs = _compact(direction=direction, velocity=velocity, **{"from": source})
    run_single_action(config, "ios.swipe", inputs, output_format)


def inspect(
    query: Optional[str] = typer.Argument(None, help="Element query: #id, \"label\", Button, *text*."),
    app: Optional[str] = typer.Option(None, "--app", help=_APP_HELP),
    simulator: Optional[str] = typer.Option(None, "--simulator", help=_SIMULATOR_HELP),
    output_format: str = typer.Option("text", "--output", "-o", help=_OUTPUT_HELP),
) -> None:
    """Inspect the current UI tree."""
    config = build_config(app=app, simulator=simulator)
    run_single_action(config, "ios.inspect", _compact(query=query), output_format)
