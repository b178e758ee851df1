"""
Late-bound descriptor fields.

Some descriptors are materialized from a CI build (`$CIRCLE_BUILD_NUM`,
`$ARTIFACT_SHA256`). A DescriptorTemplate holds the declarative mapping with
named placeholders; resolving it is a pure substitution step that takes
explicit values and never reads the environment itself.
"""
import copy
from string import Template
from typing import Any, Mapping, Optional

from cuckoo_tap.kernel.descriptor import PackageDescriptor, descriptor_from_mapping
from cuckoo_tap.kernel.errors import DescriptorError


class DescriptorTemplate:
    def __init__(self, mapping: Mapping[str, Any], origin: Optional[str] = None):
        self._mapping = copy.deepcopy(dict(mapping))
        self.origin = origin
        self._check_syntax(self._mapping)

    @property
    def name(self) -> str:
        return str(self._mapping.get("name", ""))

    @property
    def mapping(self) -> dict[str, Any]:
        return copy.deepcopy(self._mapping)

    def placeholders(self) -> list[str]:
        """
        Names of every placeholder used by this template.
        """
        names: set[str] = set()
        for text in _strings(self._mapping):
            names.update(Template(text).get_identifiers())
        return sorted(names)

    def missing(self, values: Mapping[str, str]) -> list[str]:
        return [name for name in self.placeholders() if name not in values]

    def substitute(self, values: Mapping[str, str]) -> dict[str, Any]:
        """
        Returns the mapping with every placeholder replaced.
        """
        missing = self.missing(values)
        if missing:
            raise DescriptorError(
                f"Unresolved placeholders in {self.name or 'template'}: {', '.join(missing)}",
                details=missing,
            )
        return _substitute(self._mapping, values)

    def resolve(self, values: Mapping[str, str]) -> PackageDescriptor:
        return descriptor_from_mapping(self.substitute(values))

    @staticmethod
    def _check_syntax(mapping: Mapping[str, Any]) -> None:
        for text in _strings(mapping):
            if not Template(text).is_valid():
                raise DescriptorError(f"Invalid placeholder syntax in {text!r}")

    def __repr__(self) -> str:
        return f"DescriptorTemplate(name={self.name!r}, placeholders={self.placeholders()!r})"


def values_from_environment(
    template: DescriptorTemplate,
    environ: Mapping[str, str],
    overrides: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """
    Collects substitution values for `template` only: its placeholders are
    looked up in `environ`, then explicit overrides win.
    """
    values = {name: environ[name] for name in template.placeholders() if name in environ}
    values.update(overrides or {})
    return values


def _strings(value: Any):
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _strings(item)


def _substitute(value: Any, values: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return Template(value).substitute(values)
    if isinstance(value, Mapping):
        return {k: _substitute(v, values) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_substitute(v, values) for v in value]
    return value
