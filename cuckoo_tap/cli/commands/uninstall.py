import typer

from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, fail, get_state
from cuckoo_tap.kernel.errors import CuckooTapError


def uninstall(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Installed formula name."),
):
    """
    Remove an installed binary and its receipt.
    """
    state = get_state(ctx)
    try:
        removed = core.build_install_service(state.prefix).uninstall(name)
    except CuckooTapError as exc:
        fail(exc)

    console.print(f"Uninstalled [cyan]{name}[/cyan] ({removed})")
