"""
This module defines the install service of the cuckoo-tap kernel.
It applies a PackageDescriptor in strict sequence, delegating I/O to the
fetcher, toolchain probe and command runner ports:

    fetch -> verify -> (prerequisites) -> stage -> (build) -> place -> (test)

Every failure is terminal for the attempt and nothing is retried.
"""
import hashlib
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import unquote, urlparse

from cuckoo_tap.internal import constants, paths
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.descriptor import (
    BuildFromSource,
    InstallPrebuilt,
    PackageDescriptor,
    SmokeCheck,
)
from cuckoo_tap.kernel.errors import (
    BuildError,
    FetchError,
    FormulaNotFoundError,
    InstallError,
    IntegrityError,
    PlacementError,
    UnmetPrerequisiteError,
    VerificationError,
)
from cuckoo_tap.kernel.ports import ArtifactFetcher, CommandResult, CommandRunner, ToolchainProbe
from cuckoo_tap.kernel.receipts import InstallReceipt, ReceiptStore
from cuckoo_tap.kernel.staging import stage_artifact

logger = get_logger(__name__)


@dataclass
class InstallLayout:
    """
    Where things go. Binaries are written once to <prefix>/bin/<name>.
    """
    prefix: Path
    cache_dir: Path

    @classmethod
    def default(cls, prefix: Optional[Path] = None) -> "InstallLayout":
        return cls(
            prefix=Path(prefix) if prefix else paths.get_prefix_dir(),
            cache_dir=paths.get_cache_dir(),
        )

    @property
    def bin_dir(self) -> Path:
        return self.prefix / "bin"

    @property
    def receipts_dir(self) -> Path:
        return self.prefix.joinpath(*constants.RECEIPTS_SUBDIR)

    @property
    def downloads_dir(self) -> Path:
        return self.cache_dir / constants.DOWNLOADS_SUBDIR

    @property
    def staging_root(self) -> Path:
        return self.cache_dir / constants.STAGING_SUBDIR

    def binary_path(self, binary_name: str) -> Path:
        return self.bin_dir / binary_name


@dataclass
class InstallEvent:
    """
    One step of an install attempt, as streamed by InstallService.execute.
    """
    name: str
    status: str  # e.g. 'fetching', 'building', 'completed', 'error'
    output: dict


@dataclass
class InstallReport:
    name: str
    variant: str
    artifact_path: Optional[Path] = None
    binary_path: Optional[Path] = None
    built: bool = False
    verified: Optional[bool] = None
    stages: list[str] = field(default_factory=list)

    @property
    def installed(self) -> bool:
        return self.binary_path is not None


def calculate_sha256(file_path: Path) -> str:
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def error_details(error: InstallError) -> list[str]:
    """
    Extra lines worth showing for a failed stage, tool output kept verbatim.
    """
    details = list(getattr(error, "missing", []))
    for stream in ("stderr", "stdout"):
        text = getattr(error, stream, "")
        if text and text.strip():
            details.append(text.rstrip())
    return details


def artifact_filename(url: str) -> str:
    name = unquote(urlparse(url).path).rstrip("/").split("/")[-1]
    return name or "artifact"


class InstallService:
    """
    Orchestrates one install attempt per call. Stateless between calls apart
    from the download cache and the receipts it writes.
    """

    def __init__(
        self,
        fetcher: ArtifactFetcher,
        toolchain: ToolchainProbe,
        runner: CommandRunner,
        layout: InstallLayout,
    ):
        self.fetcher = fetcher
        self.toolchain = toolchain
        self.runner = runner
        self.layout = layout
        self.receipts = ReceiptStore(layout.receipts_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def install(self, descriptor: PackageDescriptor, run_test: bool = True) -> InstallReport:
        """
        Runs the whole sequence and returns a report.

        Raises the InstallError of the failing stage. A VerificationError
        carries the report of the (kept) install in `.report`.
        """
        report = InstallReport(name=descriptor.name, variant=descriptor.variant)
        try:
            for _ in self._run(descriptor, run_test, report):
                pass
        except VerificationError as e:
            e.report = report
            raise
        return report

    def execute(self, descriptor: PackageDescriptor, run_test: bool = True) -> Iterator[InstallEvent]:
        """
        Streams the install as events, ending with 'completed' or 'error'.
        """
        report = InstallReport(name=descriptor.name, variant=descriptor.variant)
        try:
            for status, output in self._run(descriptor, run_test, report):
                yield InstallEvent(name=descriptor.name, status=status, output=output)
        except InstallError as e:
            yield InstallEvent(
                name=descriptor.name,
                status="error",
                output={
                    "error": e.message,
                    "code": e.code,
                    "stage": e.stage,
                    "installed": report.installed,
                    "binary": str(report.binary_path) if report.binary_path else None,
                    "details": error_details(e),
                },
            )
            return

        yield InstallEvent(
            name=descriptor.name,
            status="completed",
            output={
                "binary": str(report.binary_path),
                "variant": report.variant,
                "verified": report.verified,
            },
        )

    def smoke_test(self, name: str) -> CommandResult:
        """
        Re-runs the smoke check of an installed formula using its receipt.
        """
        receipt = self.receipts.load(name)
        if receipt is None:
            raise FormulaNotFoundError(f"{name} is not installed under {self.layout.prefix}")

        check = SmokeCheck(args=tuple(receipt.smoke_args), timeout=receipt.smoke_timeout)
        try:
            result = self._run_smoke_check(Path(receipt.binary_path), check)
        except VerificationError:
            receipt.verified = False
            self.receipts.save(receipt)
            raise
        receipt.verified = True
        self.receipts.save(receipt)
        return result

    def uninstall(self, name: str) -> Path:
        receipt = self.receipts.load(name)
        if receipt is None:
            raise FormulaNotFoundError(f"{name} is not installed under {self.layout.prefix}")

        binary = Path(receipt.binary_path)
        binary.unlink(missing_ok=True)
        self.receipts.remove(name)
        logger.info("Uninstalled", name=name, binary=str(binary))
        return binary

    def installed(self) -> list[InstallReceipt]:
        return self.receipts.list()

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    def _run(
        self, descriptor: PackageDescriptor, run_test: bool, report: InstallReport
    ) -> Iterator[tuple[str, dict]]:
        log = logger.bind(name=descriptor.name, variant=descriptor.variant)
        filename = artifact_filename(descriptor.source_location)

        # 1. Fetch
        report.stages.append("fetch")
        yield "fetching", {"url": descriptor.source_location}
        artifact = self._fetch(descriptor, filename)
        report.artifact_path = artifact

        # 2. Verify (fails closed)
        report.stages.append("verify")
        yield "verifying", {"sha256": descriptor.integrity_hash}
        self._verify(artifact, descriptor.integrity_hash)
        log.info("Artifact verified", sha256=descriptor.integrity_hash)

        # 3. Build prerequisites
        tool_dirs: list[Path] = []
        if descriptor.build_dependencies:
            report.stages.append("prerequisites")
            yield "checking_prerequisites", {
                "dependencies": [str(d) for d in descriptor.build_dependencies]
            }
            tool_dirs = self._check_prerequisites(descriptor)

        self.layout.staging_root.mkdir(parents=True, exist_ok=True)
        staging_dir = Path(tempfile.mkdtemp(prefix=f"{descriptor.name}-", dir=self.layout.staging_root))
        try:
            # 4. Stage
            report.stages.append("stage")
            yield "staging", {"directory": str(staging_dir)}
            source_root = stage_artifact(artifact, staging_dir, filename)

            # 5. Build or locate the prebuilt binary
            procedure = descriptor.install_procedure
            if isinstance(procedure, BuildFromSource):
                report.stages.append("build")
                yield "building", {"command": procedure.command, "workdir": procedure.workdir}
                produced = self._build(procedure, source_root, tool_dirs)
                report.built = True
            else:
                produced = self._locate_prebuilt(procedure, source_root, filename, descriptor.binary_name)

            # 6. Place
            report.stages.append("place")
            target = self.layout.binary_path(descriptor.binary_name)
            yield "placing", {"source": str(produced), "target": str(target)}
            mark_executable = isinstance(procedure, InstallPrebuilt) and procedure.mark_executable
            report.binary_path = self._place(produced, target, mark_executable)
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

        receipt = InstallReceipt(
            name=descriptor.name,
            variant=descriptor.variant,
            source_location=descriptor.source_location,
            integrity_hash=descriptor.integrity_hash,
            binary_path=str(report.binary_path),
            smoke_args=list(descriptor.smoke_check.args),
            smoke_timeout=descriptor.smoke_check.timeout,
            version=descriptor.version,
        )
        self.receipts.save(receipt)
        log.info("Installed", binary=str(report.binary_path))

        # 7. Smoke test
        if not run_test:
            return
        report.stages.append("test")
        yield "testing", {"args": list(descriptor.smoke_check.args)}
        try:
            self._run_smoke_check(report.binary_path, descriptor.smoke_check)
        except VerificationError:
            report.verified = False
            receipt.verified = False
            self.receipts.save(receipt)
            raise
        report.verified = True
        receipt.verified = True
        self.receipts.save(receipt)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _fetch(self, descriptor: PackageDescriptor, filename: str) -> Path:
        downloads = self.layout.downloads_dir
        downloads.mkdir(parents=True, exist_ok=True)
        destination = downloads / f"{descriptor.integrity_hash}--{filename}"

        if destination.exists():
            if calculate_sha256(destination) == descriptor.integrity_hash:
                logger.info("Using cached artifact", path=str(destination))
                return destination
            logger.warning("Cached artifact is corrupt, fetching again", path=str(destination))
            destination.unlink()

        logger.info("Fetching artifact", url=descriptor.source_location)
        fetched = self.fetcher.fetch(descriptor.source_location, destination)
        if not fetched.is_file():
            raise FetchError(f"Fetcher returned no file for {descriptor.source_location}")
        return fetched

    def _verify(self, artifact: Path, expected: str) -> None:
        actual = calculate_sha256(artifact)
        if actual != expected:
            artifact.unlink(missing_ok=True)
            logger.error("Checksum mismatch", path=str(artifact), expected=expected, actual=actual)
            raise IntegrityError(
                f"SHA256 mismatch for {artifact.name}: expected {expected}, got {actual}",
                expected=expected,
                actual=actual,
            )

    def _check_prerequisites(self, descriptor: PackageDescriptor) -> list[Path]:
        tool_dirs = []
        missing = []
        for dependency in descriptor.build_dependencies:
            located = self.toolchain.locate(dependency)
            if located is None:
                missing.append(str(dependency))
                continue
            logger.info("Build dependency found", dependency=str(dependency), path=str(located))
            if located.parent not in tool_dirs:
                tool_dirs.append(located.parent)

        if missing:
            raise UnmetPrerequisiteError(
                f"Missing build dependencies for {descriptor.name}: {', '.join(missing)}",
                missing=missing,
            )
        return tool_dirs

    def _build(self, procedure: BuildFromSource, source_root: Path, tool_dirs: list[Path]) -> Path:
        workdir = source_root / procedure.workdir
        if not workdir.is_dir():
            raise BuildError(f"Build directory not found in source tree: {procedure.workdir}")

        env = dict(os.environ)
        env.update(procedure.env)
        if tool_dirs:
            env["PATH"] = os.pathsep.join([str(d) for d in tool_dirs] + [env.get("PATH", "")])

        args = shlex.split(procedure.command)
        logger.info("Building", command=procedure.command, cwd=str(workdir))
        try:
            result = self.runner.run(args, cwd=workdir, env=env, timeout=constants.BUILD_TIMEOUT)
        except FileNotFoundError as e:
            raise BuildError(f"Build command not found: {args[0]}") from e
        except TimeoutError as e:
            raise BuildError(f"Build timed out after {constants.BUILD_TIMEOUT}s: {procedure.command}") from e
        except OSError as e:
            raise BuildError(f"Build command could not start: {e}") from e

        if not result.success:
            raise BuildError(
                f"Build command failed with exit code {result.returncode}: {procedure.command}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        produced = source_root / procedure.output
        if not produced.is_file():
            raise BuildError(f"Build succeeded but expected output is missing: {procedure.output}")
        return produced

    def _locate_prebuilt(
        self, procedure: InstallPrebuilt, source_root: Path, filename: str, binary_name: str
    ) -> Path:
        if procedure.artifact:
            candidate = source_root / procedure.artifact
        else:
            candidate = source_root / filename
            if not candidate.is_file():
                candidate = source_root / binary_name
        if not candidate.is_file():
            raise PlacementError(f"Prebuilt artifact not found: {candidate.relative_to(source_root)}")
        return candidate

    def _place(self, source: Path, target: Path, mark_executable: bool) -> Path:
        tmp = target.with_name(f".{target.name}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, tmp)
            if mark_executable:
                tmp.chmod(tmp.stat().st_mode | 0o111)
            # An existing binary is only replaced by one that can run.
            executable = os.access(tmp, os.X_OK)
            if executable:
                os.replace(tmp, target)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise PlacementError(f"Could not place {source.name} at {target}: {e}") from e

        if not executable:
            tmp.unlink(missing_ok=True)
            raise PlacementError(f"Installed file is not executable: {target}")
        logger.info("Placed binary", target=str(target))
        return target

    def _run_smoke_check(self, binary: Path, check: SmokeCheck) -> CommandResult:
        args = [str(binary), *check.args]
        logger.info("Running smoke check", command=" ".join(args))
        try:
            result = self.runner.run(args, cwd=binary.parent, timeout=check.timeout)
        except TimeoutError as e:
            raise VerificationError(f"Smoke check timed out after {check.timeout}s: {' '.join(args)}") from e
        except OSError as e:
            raise VerificationError(f"Smoke check could not start {binary}: {e}") from e

        if not result.success:
            raise VerificationError(
                f"Smoke check failed with exit code {result.returncode}: {' '.join(args)}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        logger.info("Smoke check passed", binary=str(binary))
        return result
