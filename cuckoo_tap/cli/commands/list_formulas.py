import typer
from rich.table import Table

from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, fail, get_state
from cuckoo_tap.kernel.errors import CuckooTapError


def list_formulas(ctx: typer.Context):
    """
    List known formulas and whether they are installed.
    """
    state = get_state(ctx)
    try:
        registry = core.load_registry(state.formula_dirs)
        installed = {r.name: r for r in core.build_install_service(state.prefix).installed()}
    except CuckooTapError as exc:
        fail(exc)

    formulas = registry.list()
    if not formulas:
        console.print("[yellow]No formulas found.[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Formulas")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Channels")
    table.add_column("Installed", style="green", no_wrap=True)
    table.add_column("Description")

    for formula in formulas:
        channels = [
            f"[bold]{c}[/bold]" if c == formula.default_channel else c
            for c in sorted(formula.channels)
        ]
        receipt = installed.get(formula.name)
        table.add_row(
            formula.name,
            ", ".join(channels),
            receipt.variant if receipt else "",
            formula.description,
        )
    console.print(table)
