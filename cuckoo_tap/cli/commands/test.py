import typer

from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, fail, get_state
from cuckoo_tap.kernel.errors import CuckooTapError


def test(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Installed formula name."),
):
    """
    Run the smoke check of an installed formula.
    """
    state = get_state(ctx)
    try:
        core.build_install_service(state.prefix).smoke_test(name)
    except CuckooTapError as exc:
        fail(exc, title="Smoke check failed")

    console.print(f"[green]{name}: smoke check passed.[/green]")
