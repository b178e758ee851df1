"""
Core, reusable logic for CLI commands, decoupled from Typer.
Responsible ONLY for wiring adapters into the kernel and resolving
descriptors from the command line.
"""
import os
from pathlib import Path
from typing import Mapping, Optional

from cuckoo_tap.adapters.formula_fs import FileSystemFormulaRegistry
from cuckoo_tap.adapters.http_fetcher import HttpArtifactFetcher
from cuckoo_tap.adapters.process import SubprocessRunner
from cuckoo_tap.adapters.toolchain import PathToolchainProbe
from cuckoo_tap.internal import paths
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.descriptor import PackageDescriptor
from cuckoo_tap.kernel.errors import DescriptorError
from cuckoo_tap.kernel.installer import InstallLayout, InstallService
from cuckoo_tap.kernel.template import values_from_environment

logger = get_logger(__name__)


def load_registry(formula_dirs: Optional[list[Path]] = None) -> FileSystemFormulaRegistry:
    dirs = list(formula_dirs or []) + paths.get_formula_dirs()
    return FileSystemFormulaRegistry(search_dirs=dirs)


def build_install_service(prefix: Optional[Path] = None) -> InstallService:
    runner = SubprocessRunner()
    return InstallService(
        fetcher=HttpArtifactFetcher(),
        toolchain=PathToolchainProbe(runner),
        runner=runner,
        layout=InstallLayout.default(prefix),
    )


def parse_vars(pairs: Optional[list[str]]) -> dict[str, str]:
    """
    Parses repeated `--var KEY=VALUE` options.
    """
    values = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise DescriptorError(f"Expected KEY=VALUE, got {pair!r}")
        values[key.strip()] = value
    return values


def resolve_descriptor(
    registry: FileSystemFormulaRegistry,
    name: str,
    channel: Optional[str] = None,
    overrides: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PackageDescriptor:
    template = registry.template(name, channel)
    values = values_from_environment(
        template,
        environ if environ is not None else os.environ,
        overrides,
    )
    descriptor = template.resolve(values)
    logger.info(
        "Descriptor resolved",
        name=descriptor.name,
        variant=descriptor.variant,
        placeholders=template.placeholders(),
    )
    return descriptor
