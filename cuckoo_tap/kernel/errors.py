"""
Error taxonomy for descriptors and install attempts.

Every failure is terminal for the current install attempt. The `code` is
stable and is what the CLI and install events report.
"""
from typing import Optional


class CuckooTapError(Exception):
    """Base error."""

    code: str = "UNKNOWN"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DescriptorError(CuckooTapError):
    """A descriptor, template or formula file is invalid or incomplete."""

    code = "INVALID_DESCRIPTOR"

    def __init__(self, message: str, details: Optional[list[str]] = None):
        super().__init__(message)
        self.details = details or []


class FormulaNotFoundError(CuckooTapError):
    code = "FORMULA_NOT_FOUND"


class ReceiptError(CuckooTapError):
    """An install receipt on disk cannot be read."""

    code = "INVALID_RECEIPT"


# ---------------------------------------------------------------------
# Install stages
# ---------------------------------------------------------------------

class InstallError(CuckooTapError):
    """Raised by a stage of an install attempt."""

    code = "INSTALL_FAILED"
    stage = "install"


class FetchError(InstallError):
    code = "FETCH_FAILED"
    stage = "fetch"


class IntegrityError(InstallError):
    """The fetched bytes do not match the declared sha256."""

    code = "INTEGRITY_MISMATCH"
    stage = "verify"

    def __init__(self, message: str, expected: str, actual: str):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class UnmetPrerequisiteError(InstallError):
    """A build-time toolchain is missing or has the wrong version."""

    code = "UNMET_PREREQUISITE"
    stage = "prerequisites"

    def __init__(self, message: str, missing: list[str]):
        super().__init__(message)
        self.missing = missing


class StagingError(InstallError):
    """The verified artifact could not be unpacked."""

    code = "STAGING_FAILED"
    stage = "stage"


class BuildError(InstallError):
    """The build command failed; the tool's own output is kept verbatim."""

    code = "BUILD_FAILED"
    stage = "build"

    def __init__(self, message: str, returncode: Optional[int] = None, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class PlacementError(InstallError):
    code = "PLACEMENT_FAILED"
    stage = "place"


class VerificationError(InstallError):
    """
    The post-install smoke check failed. The install itself is not reversed.
    """

    code = "VERIFICATION_FAILED"
    stage = "test"

    def __init__(self, message: str, returncode: Optional[int] = None, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.report = None
