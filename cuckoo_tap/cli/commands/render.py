import json
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from cuckoo_tap.adapters.ruby_formula import render_formula
from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, fail, get_state
from cuckoo_tap.kernel.descriptor import descriptor_to_mapping
from cuckoo_tap.kernel.errors import CuckooTapError


class RenderFormat(str, Enum):
    rb = "rb"
    json = "json"


def render(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Formula name."),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="Formula channel."),
    var: Optional[list[str]] = typer.Option(None, "--var", help="Placeholder value as KEY=VALUE; may be repeated."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
    fmt: RenderFormat = typer.Option(
        RenderFormat.rb, "--format", "-f",
        help="rb: Homebrew Ruby formula. json: the resolved descriptor in its declarative mapping form.",
    ),
):
    """
    Render a resolved channel as a Homebrew Ruby formula or as JSON.
    """
    state = get_state(ctx)
    try:
        registry = core.load_registry(state.formula_dirs)
        descriptor = core.resolve_descriptor(registry, name, channel, core.parse_vars(var))
    except CuckooTapError as exc:
        fail(exc)

    if fmt is RenderFormat.json:
        text = json.dumps(descriptor_to_mapping(descriptor), indent=2) + "\n"
    else:
        text = render_formula(descriptor)

    if output is None:
        typer.echo(text, nl=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    console.print(f"Wrote {output}")
