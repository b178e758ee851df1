import typer
from rich.table import Table

from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, fail, get_state
from cuckoo_tap.kernel.errors import CuckooTapError


def info(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Formula name."),
):
    """
    Show a formula's channels and the placeholders each one needs.
    """
    state = get_state(ctx)
    try:
        formula = core.load_registry(state.formula_dirs).get(name)
        receipt = core.build_install_service(state.prefix).receipts.load(name)
    except CuckooTapError as exc:
        fail(exc)

    console.print(f"[bold cyan]{formula.name}[/bold cyan]: {formula.description}")
    console.print(f"[dim]From:[/dim] {formula.origin}")
    if receipt:
        verified = {True: "passed", False: "FAILED", None: "not run"}[receipt.verified]
        console.print(
            f"[green]Installed[/green] {receipt.binary_path} "
            f"({receipt.variant}, smoke check {verified})"
        )
    else:
        console.print("[dim]Not installed[/dim]")

    table = Table(title="Channels")
    table.add_column("Channel", style="cyan", no_wrap=True)
    table.add_column("Install")
    table.add_column("URL")
    table.add_column("Build deps")
    table.add_column("Placeholders", style="yellow")

    for channel_name in sorted(formula.channels):
        template = formula.channels[channel_name]
        mapping = template.mapping
        install_kind = next(iter(mapping.get("install") or {}), "?")
        deps = [
            d if isinstance(d, str) else (f"{d['name']}@{d['version']}" if d.get("version") else d["name"])
            for d in mapping.get("depends_on") or []
        ]
        label = f"{channel_name} (default)" if channel_name == formula.default_channel else channel_name
        table.add_row(
            label,
            install_kind,
            str(mapping.get("url", "")),
            ", ".join(deps),
            ", ".join(template.placeholders()),
        )
    console.print(table)
