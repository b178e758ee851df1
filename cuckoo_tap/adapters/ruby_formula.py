"""
Homebrew-style Ruby formula text for the declarative subset cuckoo-tap
understands:

    class Cuckoo < Formula
      desc "..."
      url "..."
      sha256 "..."
      depends_on "go@1.14" => :build
      def install
        system "cd source && go build -v"
        bin.install "source/cuckoo" => "cuckoo"
      end
      test do
        system "#{bin}/cuckoo", "help"
      end
    end

Anything outside that subset is rejected rather than guessed at.
"""
import re
import shlex
from typing import Any, Optional

from cuckoo_tap.kernel.descriptor import BuildDependency, BuildFromSource, PackageDescriptor, shell_operators
from cuckoo_tap.kernel.errors import DescriptorError
from cuckoo_tap.kernel.installer import artifact_filename

_STRING = r'"((?:[^"\\]|\\.)*)"'

_CLASS_RE = re.compile(r"^class\s+(\w+)\s*<\s*Formula\s*$")
_FIELD_RE = re.compile(rf"^(desc|homepage|url|sha256|version|license)\s+{_STRING}\s*$")
_DEPENDS_RE = re.compile(rf"^depends_on\s+{_STRING}(\s*=>\s*:(\w+))?\s*$")
_SYSTEM_RE = re.compile(r"^system\s+(.+)$")
_ENV_RE = re.compile(rf"^ENV\[{_STRING}\]\s*=\s*{_STRING}\s*$")
_BIN_INSTALL_RE = re.compile(rf"^bin\.install\s+{_STRING}(\s*=>\s*{_STRING})?\s*$")
_CD_RE = re.compile(r"^cd\s+(\S+)\s*&&\s*(.+)$")
_BIN_PATH_RE = re.compile(r'^"#\{bin\}/([^"]+)"$|^bin\s*/\s*"([^"]+)"$')


# ---------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------

def formula_class_name(name: str) -> str:
    """
    "cuckoo" -> "Cuckoo", "cuckoo-bin" -> "CuckooBin", "go@1.14" -> "GoAT114".
    """
    parts = re.split(r"[^A-Za-z0-9]+", name.replace("@", "AT"))
    return "".join(p[0].upper() + p[1:] for p in parts if p)


def render_formula(descriptor: PackageDescriptor) -> str:
    procedure = descriptor.install_procedure
    lines = [
        f"class {formula_class_name(descriptor.name)} < Formula",
        f"  desc {_quote(descriptor.description)}",
        f"  url {_quote(descriptor.source_location)}",
    ]
    if descriptor.version:
        lines.append(f"  version {_quote(descriptor.version)}")
    lines.append(f"  sha256 {_quote(descriptor.integrity_hash)}")

    if descriptor.build_dependencies:
        lines.append("")
        for dependency in descriptor.build_dependencies:
            lines.append(f"  depends_on {_quote(str(dependency))} => :build")

    lines.append("")
    lines.append("  def install")
    if isinstance(procedure, BuildFromSource):
        for key, value in procedure.env.items():
            lines.append(f"    ENV[{_quote(key)}] = {_quote(value)}")
        command = procedure.command
        if procedure.workdir not in (".", ""):
            command = f"cd {procedure.workdir} && {command}"
        lines.append(f"    system {_quote(command)}")
        source = procedure.output
    else:
        source = procedure.artifact or artifact_filename(descriptor.source_location)
    lines.append(f"    bin.install {_quote(source)} => {_quote(descriptor.binary_name)}")
    lines.append("  end")

    lines.append("")
    lines.append("  test do")
    test_args = ", ".join(_quote(a) for a in descriptor.smoke_check.args)
    binary_ref = '"#{bin}/' + _escape(descriptor.binary_name) + '"'
    lines.append(f"    system {binary_ref}" + (f", {test_args}" if test_args else ""))
    lines.append("  end")
    lines.append("end")
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------

def parse_formula(text: str, name: Optional[str] = None) -> dict[str, Any]:
    """
    Parses formula text into the declarative mapping form.

    `name` defaults to the class name in kebab case; Homebrew derives it from
    the file name, which callers should pass when they have one. Placeholders
    such as `$CIRCLE_BUILD_NUM` are kept verbatim for the template step.
    """
    class_name = None
    fields: dict[str, str] = {}
    dependencies: list[dict[str, Optional[str]]] = []
    system_commands: list[str] = []
    env: dict[str, str] = {}
    bin_install: Optional[tuple[str, Optional[str]]] = None
    test_args: Optional[list[str]] = None
    block = "top"

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        def fail(reason: str):
            return DescriptorError(f"Unsupported formula syntax on line {lineno}: {reason}", details=[raw])

        if block == "top":
            if class_name is None:
                m = _CLASS_RE.match(line)
                if not m:
                    raise fail("expected 'class <Name> < Formula'")
                class_name = m.group(1)
                continue
            if line == "def install":
                block = "install"
                continue
            if line == "test do":
                block = "test"
                continue
            if line == "end":
                block = "done"
                continue
            m = _FIELD_RE.match(line)
            if m:
                fields[m.group(1)] = _unescape(m.group(2))
                continue
            m = _DEPENDS_RE.match(line)
            if m:
                if m.group(3) != "build":
                    raise fail("only build-time dependencies (=> :build) are supported")
                dep = BuildDependency.parse(_unescape(m.group(1)))
                dependencies.append({"name": dep.name, "version": dep.version})
                continue
            raise fail(line)

        elif block == "install":
            if line == "end":
                block = "top"
                continue
            m = _SYSTEM_RE.match(line)
            if m:
                args = _string_args(m.group(1))
                if args is None:
                    raise fail("system arguments must be string literals")
                command = args[0] if len(args) == 1 else shlex.join(args)
                cd = _CD_RE.match(command)
                words = f"{cd.group(1)} {cd.group(2)}" if cd else command
                operators = [
                    op for op in shell_operators(words)
                    if op != "$"  # placeholders, resolved by the template step
                ]
                if operators:
                    raise fail(f"shell syntax ({' '.join(operators)}) is not supported; build commands run without a shell")
                system_commands.append(command)
                continue
            m = _ENV_RE.match(line)
            if m:
                env[_unescape(m.group(1))] = _unescape(m.group(2))
                continue
            m = _BIN_INSTALL_RE.match(line)
            if m:
                if bin_install is not None:
                    raise fail("only one bin.install is supported")
                bin_install = (_unescape(m.group(1)), _unescape(m.group(3)) if m.group(3) is not None else None)
                continue
            raise fail(line)

        elif block == "test":
            if line == "end":
                block = "top"
                continue
            if test_args is not None:
                raise fail("only one test command is supported")
            test_args = _parse_test_line(line, fail)

        else:
            raise fail("content after the closing 'end'")

    if class_name is None:
        raise DescriptorError("No formula class found")
    if block != "done":
        raise DescriptorError(f"Formula {class_name} is not closed with 'end'")
    if bin_install is None:
        raise DescriptorError(f"Formula {class_name} has no bin.install in its install block")
    if len(system_commands) > 1:
        raise DescriptorError(f"Formula {class_name} runs more than one build command")

    source, target = bin_install
    binary = target or source.rstrip("/").split("/")[-1]

    if system_commands:
        command = system_commands[0]
        workdir = "."
        m = _CD_RE.match(command)
        if m:
            workdir, command = m.group(1), m.group(2).strip()
        install: dict[str, Any] = {
            "build_from_source": {"workdir": workdir, "command": command, "output": source, "env": env}
        }
    else:
        if env:
            raise DescriptorError(f"Formula {class_name} sets ENV without a build command")
        install = {"install_prebuilt": {"artifact": source}}

    mapping: dict[str, Any] = {
        "name": name or _kebab(class_name),
        "desc": fields.get("desc", ""),
        "binary": binary,
        "url": fields.get("url", ""),
        "sha256": fields.get("sha256", ""),
        "depends_on": dependencies,
        "install": install,
    }
    if "version" in fields:
        mapping["version"] = fields["version"]
    if test_args is not None:
        mapping["test"] = {"args": test_args}
    return mapping


def _parse_test_line(line: str, fail) -> list[str]:
    m = _SYSTEM_RE.match(line)
    if m:
        head, _, rest = m.group(1).partition(",")
        if not _BIN_PATH_RE.match(head.strip()):
            raise fail('test must run "#{bin}/<name>"')
        args = _string_args(rest) if rest.strip() else []
        if args is None:
            raise fail("test arguments must be string literals")
        return args
    # Bare form: `cuckoo help`
    words = line.split()
    if all(re.match(r"^[\w.-]+$", w) for w in words):
        return words[1:]
    raise fail(line)


def _string_args(text: str) -> Optional[list[str]]:
    args = []
    for part in re.finditer(rf"\s*{_STRING}\s*(,|$)", text):
        args.append(_unescape(part.group(1)))
    rebuilt = re.sub(rf"\s*{_STRING}\s*(,|$)", "", text)
    if rebuilt.strip() or not args:
        return None
    return args


def _kebab(class_name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", class_name).lower()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("#{", "\\#{")


def _quote(value: str) -> str:
    return f'"{_escape(value)}"'


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)
