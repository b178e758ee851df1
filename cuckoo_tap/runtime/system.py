"""
Host facts reported by `cuckoo-tap doctor`.
"""
import os
import platform
from dataclasses import dataclass
from pathlib import Path

import psutil


@dataclass
class HostInfo:
    os_name: str
    arch: str
    python_version: str
    total_ram_gb: float
    free_disk_gb: float


def _to_gb(num_bytes: int) -> float:
    return round(num_bytes / (1024**3), 2)


def collect_host_info(disk_path: Path) -> HostInfo:
    """
    `disk_path` is the filesystem the install prefix lives on. It may not
    exist yet, in which case its nearest existing parent is measured.
    """
    while not disk_path.exists() and disk_path != disk_path.parent:
        disk_path = disk_path.parent
    return HostInfo(
        os_name=platform.system(),
        arch=platform.machine(),
        python_version=platform.python_version(),
        total_ram_gb=_to_gb(psutil.virtual_memory().total),
        free_disk_gb=_to_gb(psutil.disk_usage(str(disk_path)).free),
    )


def is_on_path(directory: Path, path_value: str | None = None) -> bool:
    path_value = os.environ.get("PATH", "") if path_value is None else path_value
    target = directory.expanduser().resolve()
    for entry in path_value.split(os.pathsep):
        if entry and Path(entry).expanduser().resolve() == target:
            return True
    return False


if __name__ == "__main__":
    info = collect_host_info(Path.home())
    print(f"OS: {info.os_name} ({info.arch})")
    print(f"Python: {info.python_version}")
    print(f"Total RAM: {info.total_ram_gb} GB")
    print(f"Free disk (home): {info.free_disk_gb} GB")
