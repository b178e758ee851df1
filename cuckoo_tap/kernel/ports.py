"""
Defines the abstract contracts the installer depends on.

These are the 'ports' for which network, toolchain and process adapters
must be provided. The kernel never talks to requests, shutil.which or
subprocess directly.
"""
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from cuckoo_tap.kernel.descriptor import BuildDependency


@dataclass
class CommandResult:
    """
    Outcome of an external command, decoupled from subprocess.
    """
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class ArtifactFetcher(Protocol):
    """
    Anything that can turn a source location into bytes on local disk.
    """

    @abstractmethod
    def fetch(self, url: str, destination: Path) -> Path:
        """
        Downloads `url` to `destination` (a file path) and returns it.

        Must not leave a partial file at `destination` on failure.

        Raises:
            FetchError: when the location cannot be retrieved.
        """
        ...


class ToolchainProbe(Protocol):
    """
    Locates build-time toolchains.
    """

    @abstractmethod
    def locate(self, dependency: BuildDependency) -> Optional[Path]:
        """
        Returns the executable satisfying `dependency` (matching its version
        when one is declared), or None.
        """
        ...


class CommandRunner(Protocol):
    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Runs a command to completion and captures its output.

        Raises:
            FileNotFoundError: the executable does not exist.
            TimeoutError: the command exceeded `timeout`.
        """
        ...
