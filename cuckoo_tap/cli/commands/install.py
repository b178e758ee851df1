from typing import Optional

import typer
from rich.markup import escape

from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import console, err_console, fail, get_state
from cuckoo_tap.kernel.errors import CuckooTapError

STATUS_LABELS = {
    "fetching": "Fetching",
    "verifying": "Verifying checksum",
    "checking_prerequisites": "Checking build dependencies",
    "staging": "Staging",
    "building": "Building",
    "placing": "Installing",
    "testing": "Running smoke check",
}


def install(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Formula name."),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="Formula channel (default: the formula's default)."),
    var: Optional[list[str]] = typer.Option(None, "--var", help="Placeholder value as KEY=VALUE; may be repeated."),
    skip_test: bool = typer.Option(False, "--skip-test", help="Do not run the post-install smoke check."),
):
    """
    Fetch, verify, build or place, and smoke-test a formula's binary.
    """
    state = get_state(ctx)
    try:
        registry = core.load_registry(state.formula_dirs)
        descriptor = core.resolve_descriptor(registry, name, channel, core.parse_vars(var))
        service = core.build_install_service(state.prefix)
    except CuckooTapError as exc:
        fail(exc)

    console.print(f"Installing [cyan]{descriptor.name}[/cyan] ({descriptor.variant})")

    for event in service.execute(descriptor, run_test=not skip_test):
        if event.status == "completed":
            console.print(f"[green]{descriptor.name} installed successfully.[/green]")
            console.print(f"[dim]Binary:[/dim] {event.output['binary']}")
            return

        if event.status == "error":
            err_console.print(
                f"[red]{event.output['stage']} failed ({event.output['code']}):[/red] {escape(event.output['error'])}",
                highlight=False,
            )
            for detail in event.output.get("details") or []:
                err_console.print(detail, highlight=False, markup=False)
            if event.output.get("installed"):
                err_console.print(f"[yellow]The binary remains installed at {escape(event.output['binary'])}.[/yellow]")
            raise typer.Exit(1)

        console.print(f"[blue]==>[/blue] {STATUS_LABELS.get(event.status, event.status)}")
