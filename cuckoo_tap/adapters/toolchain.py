import re
import shutil
from pathlib import Path
from typing import Optional

from cuckoo_tap.internal.constants import PROBE_TIMEOUT
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.descriptor import BuildDependency
from cuckoo_tap.kernel.ports import CommandRunner, ToolchainProbe

logger = get_logger(__name__)

# Most toolchains answer one of these; `go` only knows the first.
VERSION_ARGS = (("version",), ("--version",))


def version_matches(declared: str, output: str) -> bool:
    """
    True when `output` mentions `declared` as a whole version prefix:
    "1.14" matches "go1.14.15" and "1.14" but not "1.140" or "11.14".
    """
    pattern = rf"(?<![\d.]){re.escape(declared)}(?![\d])"
    return re.search(pattern, output) is not None


class PathToolchainProbe(ToolchainProbe):
    """
    Finds build tools on PATH (or an explicit search path) and checks the
    declared version against the tool's own version output.
    """

    def __init__(self, runner: CommandRunner, search_path: Optional[str] = None):
        self._runner = runner
        self._search_path = search_path

    def locate(self, dependency: BuildDependency) -> Optional[Path]:
        found = shutil.which(dependency.name, path=self._search_path)
        if not found:
            logger.warning("Build dependency not on PATH", dependency=str(dependency))
            return None

        executable = Path(found)
        if dependency.version is None:
            return executable

        reported = self.reported_version(executable)
        if reported and version_matches(dependency.version, reported):
            return executable

        logger.warning(
            "Build dependency version mismatch",
            dependency=str(dependency),
            path=str(executable),
            reported=reported,
        )
        return None

    def reported_version(self, executable: Path) -> Optional[str]:
        for args in VERSION_ARGS:
            try:
                result = self._runner.run([str(executable), *args], timeout=PROBE_TIMEOUT)
            except OSError as e:
                logger.debug("Version probe failed", executable=str(executable), error=str(e))
                continue
            if result.success:
                output = (result.stdout or result.stderr).strip()
                if output:
                    return output.splitlines()[0]
        return None
