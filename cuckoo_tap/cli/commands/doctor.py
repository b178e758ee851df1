import os

import typer

from cuckoo_tap.adapters.process import SubprocessRunner
from cuckoo_tap.adapters.toolchain import PathToolchainProbe
from cuckoo_tap.cli import core
from cuckoo_tap.cli.console import get_state
from cuckoo_tap.internal import paths
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.descriptor import BuildDependency
from cuckoo_tap.kernel.errors import CuckooTapError
from cuckoo_tap.kernel.installer import InstallLayout
from cuckoo_tap.runtime import system

logger = get_logger(__name__)


def doctor(ctx: typer.Context):
    """
    Check the cuckoo-tap installation, formulas and build toolchain.
    """
    state = get_state(ctx)
    typer.echo("Running cuckoo-tap doctor checks...\n")
    all_passed = True

    def check(description: str, func, required: bool = True):
        nonlocal all_passed
        typer.echo(f"- {description}...", nl=False)
        result, message = func()
        if result:
            typer.echo(f" {typer.style('PASSED', fg=typer.colors.GREEN)}")
        elif required:
            typer.echo(f" {typer.style('FAILED', fg=typer.colors.RED)}")
            typer.echo(f"  Reason: {message}")
            all_passed = False
        else:
            typer.echo(f" {typer.style('WARNING', fg=typer.colors.YELLOW)}")
            typer.echo(f"  Reason: {message}")

    layout = InstallLayout.default(state.prefix)

    # --- System Information ---
    typer.echo(typer.style("System Information:", fg=typer.colors.BLUE, bold=True))
    host = system.collect_host_info(layout.prefix)
    typer.echo(f"  Python Version: {host.python_version}")
    typer.echo(f"  OS: {host.os_name} ({host.arch})")
    typer.echo(f"  Total RAM: {host.total_ram_gb} GB")
    typer.echo(f"  Free disk (prefix): {host.free_disk_gb} GB")
    typer.echo(f"  Prefix: {layout.prefix}")
    typer.echo(f"  Cache: {layout.cache_dir}")
    typer.echo(f"  Log file: {paths.get_log_file()}")
    typer.echo("")

    # --- Local Filesystem Checks ---
    typer.echo(typer.style("Local Filesystem Checks:", fg=typer.colors.BLUE, bold=True))

    def check_prefix_writable():
        try:
            layout.bin_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return False, str(e)
        return os.access(layout.bin_dir, os.W_OK), f"Directory '{layout.bin_dir}' is not writable."
    check("Install directory writable", check_prefix_writable)

    def check_bin_on_path():
        return system.is_on_path(layout.bin_dir), f"Add '{layout.bin_dir}' to PATH to run installed binaries by name."
    check("Install directory on PATH", check_bin_on_path, required=False)

    # --- Formula Checks ---
    typer.echo(typer.style("\nFormula Checks:", fg=typer.colors.BLUE, bold=True))
    registry = None
    try:
        registry = core.load_registry(state.formula_dirs)
    except CuckooTapError as exc:
        logger.error("Formula loading failed", error=exc.message)
        load_error = exc.message
    else:
        load_error = ""

    def check_formulas_load():
        if registry is None:
            return False, load_error
        if not registry.names():
            return False, "No formula files found in: " + ", ".join(str(d) for d in paths.get_formula_dirs())
        return True, ""
    check("Formula files load", check_formulas_load)

    # --- Build Toolchain Checks ---
    dependencies: dict[str, BuildDependency] = {}
    for formula in registry.list() if registry else []:
        for template in formula.channels.values():
            for entry in template.mapping.get("depends_on") or []:
                try:
                    if isinstance(entry, str):
                        dependency = BuildDependency.parse(entry)
                    else:
                        dependency = BuildDependency(entry["name"], entry.get("version"))
                except (CuckooTapError, KeyError, TypeError):
                    continue
                dependencies[str(dependency)] = dependency

    if dependencies:
        typer.echo(typer.style("\nBuild Toolchain Checks:", fg=typer.colors.BLUE, bold=True))
        probe = PathToolchainProbe(SubprocessRunner())
        for label, dependency in sorted(dependencies.items()):
            def check_dependency(dependency=dependency):
                located = probe.locate(dependency)
                return located is not None, (
                    f"'{dependency.name}' not found on PATH or not at version {dependency.version}. "
                    "Only needed to build from source."
                )
            check(f"Build dependency {label}", check_dependency, required=False)

    typer.echo("\n--- Doctor Check Summary ---")
    if all_passed:
        typer.echo(typer.style("All checks PASSED!", fg=typer.colors.GREEN, bold=True))
        return
    typer.echo(typer.style("Some checks FAILED. Please review the output above.", fg=typer.colors.RED, bold=True))
    raise typer.Exit(1)


if __name__ == "__main__":
    typer.run(doctor)
