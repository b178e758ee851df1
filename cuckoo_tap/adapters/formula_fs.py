"""
A formula registry backed by formula files on the local filesystem.

Two formats are understood:

- `<name>.json`: one formula with one or more named channels, each channel
  being a self-contained install variant (url, sha256, install procedure).
- `<name>.rb`: a Homebrew-style Ruby formula, exposed as a single
  `default` channel.
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from cuckoo_tap.adapters.ruby_formula import parse_formula
from cuckoo_tap.internal.constants import DEFAULT_CHANNEL, FORMULA_SCHEMA_VERSION, SMOKE_TEST_TIMEOUT
from cuckoo_tap.internal.logging import get_logger
from cuckoo_tap.kernel.errors import DescriptorError, FormulaNotFoundError
from cuckoo_tap.kernel.template import DescriptorTemplate

logger = get_logger(__name__)


# ---------------------------------------------------------------------
# File schema
# ---------------------------------------------------------------------

class DependencyModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    version: Optional[str] = None


class BuildFromSourceModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command: str
    output: str
    workdir: str = "."
    env: dict[str, str] = Field(default_factory=dict)


class InstallPrebuiltModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    artifact: Optional[str] = None
    mark_executable: bool = True


class InstallModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    build_from_source: Optional[BuildFromSourceModel] = None
    install_prebuilt: Optional[InstallPrebuiltModel] = None

    @model_validator(mode="after")
    def exactly_one_procedure(self):
        declared = [p for p in (self.build_from_source, self.install_prebuilt) if p is not None]
        if len(declared) != 1:
            raise ValueError("exactly one of build_from_source / install_prebuilt must be declared")
        return self


class SmokeCheckModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: list[str] = Field(default_factory=lambda: ["help"])
    timeout: float = SMOKE_TEST_TIMEOUT


class ChannelModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    sha256: str
    version: Optional[str] = None
    depends_on: list[Union[DependencyModel, str]] = Field(default_factory=list)
    install: InstallModel


class FormulaFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = FORMULA_SCHEMA_VERSION
    name: str
    desc: str = ""
    binary: Optional[str] = None
    test: SmokeCheckModel = Field(default_factory=SmokeCheckModel)
    default_channel: Optional[str] = None
    channels: dict[str, ChannelModel] = Field(min_length=1)

    @model_validator(mode="after")
    def check_channels(self):
        if self.schema_version != FORMULA_SCHEMA_VERSION:
            raise ValueError(f"unsupported schema_version {self.schema_version}")
        if self.default_channel is not None and self.default_channel not in self.channels:
            raise ValueError(f"default_channel {self.default_channel!r} is not a declared channel")
        return self


# ---------------------------------------------------------------------
# Formula
# ---------------------------------------------------------------------

@dataclass
class Formula:
    name: str
    description: str
    channels: dict[str, DescriptorTemplate]
    default_channel: str
    origin: Path

    def template(self, channel: Optional[str] = None) -> DescriptorTemplate:
        selected = channel or self.default_channel
        try:
            return self.channels[selected]
        except KeyError:
            raise FormulaNotFoundError(
                f"Formula {self.name!r} has no channel {selected!r}. "
                f"Available: {', '.join(sorted(self.channels))}"
            ) from None


def formula_from_model(model: FormulaFileModel, origin: Path) -> Formula:
    shared: dict[str, Any] = {"name": model.name, "desc": model.desc, "test": model.test.model_dump()}
    if model.binary:
        shared["binary"] = model.binary

    channels = {}
    for channel_name, channel in model.channels.items():
        mapping = dict(shared)
        mapping.update(channel.model_dump(exclude_none=True))
        mapping["depends_on"] = [
            d if isinstance(d, str) else d.model_dump() for d in channel.depends_on
        ]
        channels[channel_name] = DescriptorTemplate(mapping, origin=f"{origin}#{channel_name}")

    default = model.default_channel or next(iter(model.channels))
    return Formula(
        name=model.name,
        description=model.desc,
        channels=channels,
        default_channel=default,
        origin=origin,
    )


def load_formula_file(path: Path) -> Formula:
    if path.suffix == ".rb":
        mapping = parse_formula(path.read_text(encoding="utf-8"), name=path.stem)
        template = DescriptorTemplate(mapping, origin=str(path))
        return Formula(
            name=template.name,
            description=str(mapping.get("desc", "")),
            channels={DEFAULT_CHANNEL: template},
            default_channel=DEFAULT_CHANNEL,
            origin=path,
        )

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise DescriptorError(f"Formula file is not valid JSON: {path}: {e}") from e

    try:
        model = FormulaFileModel.model_validate(data)
    except ValidationError as e:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise DescriptorError(f"Invalid formula file: {path}", details=details) from e

    if model.name != path.stem:
        raise DescriptorError(f"Formula file {path.name} declares name {model.name!r}")
    return formula_from_model(model, origin=path)


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

class FileSystemFormulaRegistry:
    """
    Loads every formula file from `search_dirs`. Earlier directories take
    precedence, so a user tap can shadow a shipped formula; two files with
    the same name inside one directory are an error.
    """

    FILE_PATTERNS = ("*.json", "*.rb")

    def __init__(self, search_dirs: list[Path]):
        self._search_dirs = [Path(d) for d in search_dirs]
        self._formulas: dict[str, Formula] = {}
        for directory in self._search_dirs:
            self._load_dir(directory)

    def _load_dir(self, directory: Path) -> None:
        if not directory.is_dir():
            logger.debug("Formula directory missing, skipping", path=str(directory))
            return

        seen: dict[str, Path] = {}
        for pattern in self.FILE_PATTERNS:
            for path in sorted(directory.glob(pattern)):
                if path.stem in seen:
                    raise DescriptorError(
                        f"Formula {path.stem!r} is defined twice in {directory}: "
                        f"{seen[path.stem].name} and {path.name}"
                    )
                seen[path.stem] = path

        for name, path in seen.items():
            if name in self._formulas:
                logger.debug("Formula shadowed", name=name, path=str(path))
                continue
            self._formulas[name] = load_formula_file(path)
            logger.debug("Formula loaded", name=name, path=str(path))

    @property
    def search_dirs(self) -> list[Path]:
        return list(self._search_dirs)

    def names(self) -> list[str]:
        return sorted(self._formulas)

    def list(self) -> list[Formula]:
        return [self._formulas[name] for name in self.names()]

    def get(self, name: str) -> Formula:
        formula = self._formulas.get(name)
        if formula is None:
            raise FormulaNotFoundError(
                f"No formula named {name!r}. Available: {', '.join(self.names()) or 'none'}"
            )
        return formula

    def template(self, name: str, channel: Optional[str] = None) -> DescriptorTemplate:
        return self.get(name).template(channel)
