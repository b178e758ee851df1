from dataclasses import dataclass, field
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from cuckoo_tap.kernel.errors import CuckooTapError

console = Console()
err_console = Console(stderr=True)


@dataclass
class CliState:
    """
    Options given before the command name, shared by every command.
    """
    prefix: Optional[Path] = None
    formula_dirs: list[Path] = field(default_factory=list)
    verbose: bool = False


def get_state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def fail(exc: CuckooTapError, title: str = "Error") -> NoReturn:
    err_console.print(f"[red]{title}:[/red] {escape(exc.message)}", highlight=False)
    for detail in getattr(exc, "details", None) or []:
        err_console.print(f"  - {detail}", highlight=False, markup=False)
    raise typer.Exit(1)
