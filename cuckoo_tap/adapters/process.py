import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.ports import CommandResult, CommandRunner

logger = get_logger(__name__)


class SubprocessRunner(CommandRunner):
    """
    Runs commands locally without a shell and captures text output.
    """

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        logger.debug("Running command", args=list(args), cwd=str(cwd) if cwd else None)
        try:
            r = subprocess.run(
                list(args),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TimeoutError(f"Command timed out after {timeout}s: {' '.join(args)}") from e

        logger.debug("Command finished", args=list(args), returncode=r.returncode)
        return CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)
