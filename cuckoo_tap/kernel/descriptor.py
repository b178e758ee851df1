"""
The package descriptor: declarative metadata plus exactly one install
procedure and a smoke check.

A descriptor is authored once, read at install time and never mutated.
These are pure data contracts; all I/O lives in the installer and adapters.
"""
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Optional, Union
from urllib.parse import urlparse

from cuckoo_tap.internal.constants import SMOKE_TEST_TIMEOUT
from cuckoo_tap.kernel.errors import DescriptorError

NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9+_.@-]*$")
SHA256_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")
SUPPORTED_SCHEMES = ("http", "https", "file")

INSTALL_KINDS = ("build_from_source", "install_prebuilt")

# Build commands are word-split and run without a shell.
SHELL_OPERATOR_PATTERN = re.compile(r"[;&|<>`$\n]")


@dataclass(frozen=True)
class BuildDependency:
    """
    A toolchain needed only while installing, e.g. `go@1.14`.
    """
    name: str
    version: Optional[str] = None

    def __post_init__(self):
        if not self.name or "@" in self.name:
            raise DescriptorError(f"Invalid build dependency name: {self.name!r}")
        if self.version is not None and not self.version.strip():
            raise DescriptorError(f"Empty version for build dependency {self.name!r}")

    @classmethod
    def parse(cls, text: str) -> "BuildDependency":
        name, sep, version = text.strip().partition("@")
        return cls(name=name, version=version if sep else None)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


@dataclass(frozen=True)
class BuildFromSource:
    """
    Run `command` inside `<source root>/<workdir>`, then install
    `<source root>/<output>`.
    """
    command: str
    output: str
    workdir: str = "."
    env: dict[str, str] = field(default_factory=dict)

    kind: ClassVar[str] = "build_from_source"

    def __post_init__(self):
        if not self.command.strip():
            raise DescriptorError("build_from_source.command cannot be empty")
        operators = shell_operators(self.command)
        if operators:
            raise DescriptorError(
                f"build_from_source.command uses shell syntax ({' '.join(operators)}), "
                f"but it runs without a shell: {self.command!r}"
            )
        try:
            shlex.split(self.command)
        except ValueError as e:
            raise DescriptorError(f"build_from_source.command cannot be split into words: {e}") from e
        if not self.output.strip():
            raise DescriptorError("build_from_source.output cannot be empty")
        _require_relative("build_from_source.output", self.output)
        _require_relative("build_from_source.workdir", self.workdir)


@dataclass(frozen=True)
class InstallPrebuilt:
    """
    Place the fetched artifact directly. `artifact` selects a file inside an
    unpacked archive; None means the downloaded file itself.
    """
    artifact: Optional[str] = None
    mark_executable: bool = True

    kind: ClassVar[str] = "install_prebuilt"

    def __post_init__(self):
        if self.artifact is not None:
            _require_relative("install_prebuilt.artifact", self.artifact)


InstallProcedure = Union[BuildFromSource, InstallPrebuilt]


@dataclass(frozen=True)
class SmokeCheck:
    """
    Liveness check: run the installed binary with fixed arguments and
    require a zero exit status. Output is not inspected.
    """
    args: tuple[str, ...] = ("help",)
    timeout: float = SMOKE_TEST_TIMEOUT

    def __post_init__(self):
        if self.timeout <= 0:
            raise DescriptorError("test.timeout must be positive")


@dataclass(frozen=True)
class PackageDescriptor:
    name: str
    description: str
    source_location: str
    integrity_hash: str
    install_procedure: InstallProcedure
    smoke_check: SmokeCheck = field(default_factory=SmokeCheck)
    build_dependencies: tuple[BuildDependency, ...] = ()
    binary_name: Optional[str] = None
    version: Optional[str] = None

    def __post_init__(self):
        errors = []
        if not NAME_PATTERN.match(self.name or ""):
            errors.append(f"name {self.name!r} must match {NAME_PATTERN.pattern}")

        scheme = urlparse(self.source_location or "").scheme
        if scheme not in SUPPORTED_SCHEMES:
            errors.append(
                f"url {self.source_location!r} must use one of {', '.join(SUPPORTED_SCHEMES)}"
            )

        if not SHA256_PATTERN.match(self.integrity_hash or ""):
            errors.append("sha256 must be 64 hexadecimal characters")

        if not isinstance(self.install_procedure, (BuildFromSource, InstallPrebuilt)):
            errors.append("exactly one install procedure (build_from_source or install_prebuilt) is required")

        binary = self.binary_name or self.name
        if "/" in binary or "\\" in binary or binary in (".", ".."):
            errors.append(f"binary name {binary!r} must be a plain file name")

        if errors:
            raise DescriptorError(f"Invalid descriptor for {self.name!r}", details=errors)

        # Frozen: normalize through object.__setattr__.
        object.__setattr__(self, "integrity_hash", self.integrity_hash.lower())
        object.__setattr__(self, "binary_name", binary)
        object.__setattr__(self, "build_dependencies", tuple(self.build_dependencies))

    @property
    def variant(self) -> str:
        return self.install_procedure.kind

    @property
    def builds_from_source(self) -> bool:
        return isinstance(self.install_procedure, BuildFromSource)


# ---------------------------------------------------------------------
# Declarative mapping form
# ---------------------------------------------------------------------

def descriptor_from_mapping(mapping: Mapping[str, Any]) -> PackageDescriptor:
    """
    Build a descriptor from its declarative mapping (the shape used by
    formula files and by templates after substitution).
    """
    install = mapping.get("install") or {}
    if not isinstance(install, Mapping):
        raise DescriptorError("install must be a mapping")
    selected = [kind for kind in INSTALL_KINDS if install.get(kind) is not None]
    unknown = sorted(set(install) - set(INSTALL_KINDS))
    if unknown:
        raise DescriptorError(f"Unknown install procedure(s): {', '.join(unknown)}")
    if len(selected) != 1:
        raise DescriptorError(
            "Exactly one of build_from_source / install_prebuilt must be declared",
            details=[f"declared: {selected or 'none'}"],
        )

    kind = selected[0]
    body = dict(install[kind])
    try:
        if kind == "build_from_source":
            procedure: InstallProcedure = BuildFromSource(
                command=body["command"],
                output=body["output"],
                workdir=body.get("workdir") or ".",
                env=dict(body.get("env") or {}),
            )
        else:
            procedure = InstallPrebuilt(
                artifact=body.get("artifact"),
                mark_executable=bool(body.get("mark_executable", True)),
            )
    except KeyError as e:
        raise DescriptorError(f"{kind} is missing required field {e.args[0]!r}") from e

    dependencies = []
    for dep in mapping.get("depends_on") or []:
        if isinstance(dep, str):
            dependencies.append(BuildDependency.parse(dep))
        elif isinstance(dep, Mapping) and "name" in dep:
            dependencies.append(BuildDependency(name=dep["name"], version=dep.get("version")))
        else:
            raise DescriptorError(f"Invalid depends_on entry: {dep!r}")

    test = mapping.get("test") or {}
    smoke_kwargs: dict[str, Any] = {}
    if "args" in test:
        smoke_kwargs["args"] = tuple(str(a) for a in test["args"])
    if test.get("timeout") is not None:
        smoke_kwargs["timeout"] = float(test["timeout"])

    return PackageDescriptor(
        name=mapping.get("name", ""),
        description=mapping.get("desc", ""),
        source_location=mapping.get("url", ""),
        integrity_hash=mapping.get("sha256", ""),
        install_procedure=procedure,
        smoke_check=SmokeCheck(**smoke_kwargs),
        build_dependencies=tuple(dependencies),
        binary_name=mapping.get("binary"),
        version=mapping.get("version"),
    )


def descriptor_to_mapping(descriptor: PackageDescriptor) -> dict[str, Any]:
    procedure = descriptor.install_procedure
    if isinstance(procedure, BuildFromSource):
        install: dict[str, Any] = {
            "workdir": procedure.workdir,
            "command": procedure.command,
            "output": procedure.output,
        }
        if procedure.env:
            install["env"] = dict(procedure.env)
    else:
        install = {"mark_executable": procedure.mark_executable}
        if procedure.artifact is not None:
            install["artifact"] = procedure.artifact

    mapping: dict[str, Any] = {
        "name": descriptor.name,
        "desc": descriptor.description,
        "binary": descriptor.binary_name,
        "url": descriptor.source_location,
        "sha256": descriptor.integrity_hash,
        "depends_on": [
            {"name": d.name, "version": d.version} for d in descriptor.build_dependencies
        ],
        "install": {procedure.kind: install},
        "test": {"args": list(descriptor.smoke_check.args), "timeout": descriptor.smoke_check.timeout},
    }
    if descriptor.version:
        mapping["version"] = descriptor.version
    return mapping


def _require_relative(label: str, value: str) -> None:
    parts = value.replace("\\", "/").split("/")
    if value.startswith(("/", "\\")) or ".." in parts:
        raise DescriptorError(f"{label} must be a relative path inside the source tree: {value!r}")


def shell_operators(command: str) -> list[str]:
    """
    Shell metacharacters found in `command`: "make && strip x" -> ["&"].
    Empty for a plain word list.
    """
    return sorted({repr(c)[1:-1] for c in SHELL_OPERATOR_PATTERN.findall(command)})
