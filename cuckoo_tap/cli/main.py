from pathlib import Path
from typing import Optional

import typer

from cuckoo_tap.cli.commands import (
    doctor,
    info,
    install,
    list_formulas,
    render,
    test,
    uninstall,
    version,
)
from cuckoo_tap.cli.console import CliState
from cuckoo_tap.internal import paths
from cuckoo_tap.internal.logging import setup_logging

app = typer.Typer(
    name="cuckoo-tap",
    help="Install the cuckoo CLI from its package descriptors.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr as well as the log file."),
    prefix: Optional[Path] = typer.Option(
        None, "--prefix", help="Install prefix (default: $CUCKOO_TAP_PREFIX or ~/.cuckoo-tap/prefix)."
    ),
    formula_dir: Optional[list[Path]] = typer.Option(
        None, "--formula-dir", help="Extra directory of formula files; may be repeated."
    ),
):
    """
    Install the cuckoo CLI from its package descriptors.
    """
    setup_logging(
        log_level_name="DEBUG" if verbose else "INFO",
        log_file_path=paths.get_log_file(),
        console_output=verbose,
    )
    ctx.obj = CliState(prefix=prefix, formula_dirs=list(formula_dir or []), verbose=verbose)


app.command("list")(list_formulas.list_formulas)
app.command("info")(info.info)
app.command("install")(install.install)
app.command("test")(test.test)
app.command("uninstall")(uninstall.uninstall)
app.command("render")(render.render)
app.command("doctor")(doctor.doctor)
app.command("version")(version.version)

if __name__ == "__main__":
    app()
