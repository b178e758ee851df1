import importlib.metadata

import typer

from cuckoo_tap.internal.logging import get_logger

logger = get_logger(__name__)


def version():
    """
    Show the cuckoo-tap version.
    """
    try:
        # Only available once the package is installed (pip install -e .)
        package_version = importlib.metadata.version("cuckoo-tap")
    except importlib.metadata.PackageNotFoundError:
        typer.echo("cuckoo-tap is not installed or version metadata not found.")
        logger.warning("cuckoo-tap package version not found.")
        raise typer.Exit(1)
    typer.echo(f"cuckoo-tap version: {package_version}")
