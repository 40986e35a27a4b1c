"""tapbook actions -- List the registered actions and their inputs."""

from __future__ import annotations

import typer
from rich.markup import escape
from rich.table import Table

from tapbook.cli.common import build_config, build_registry, check_output_format, output_console, to_json


def actions(
    output_format: str = typer.Option("text", "--output", "-o", help="Output format: text or json."),
) -> None:
    """List every available action with its inputs."""
    check_output_format(output_format)
    registry = build_registry(build_config())

    if output_format == "json":
        data = [
            {
                "name": d.name,
                "description": d.description,
                "inputs": {
                    name: {"type": s.type, "required": s.required, "default": s.default, "description": s.description}
                    for name, s in d.inputs.items()
                },
            }
            for d in registry.get_all()
        ]
        output_console.print(to_json(data), markup=False, highlight=False, soft_wrap=True)
        return

    table = Table(title="Actions", show_header=True, header_style="bold")
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Inputs")
    for definition in registry.get_all():
        inputs = []
        for name, spec in definition.inputs.items():
            if name in ("app", "simulator"):
                continue
            label = f"[bold]{name}[/bold]" if spec.required else name
            if spec.default is not None:
                label += f"[dim]={escape(str(spec.default))}[/dim]"
            inputs.append(f"{label} [dim]({spec.type})[/dim]")
        table.add_row(definition.name, escape(definition.description), "\n".join(inputs))
    output_console.print(table)
    output_console.print("[dim]All actions also accept app and simulator.[/dim]")
