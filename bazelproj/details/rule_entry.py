from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from bazelproj.details.build_label import BuildLabel
from bazelproj.errors import AttributeTypeError


@dataclass(frozen=True)
class StringAttribute:
    value: str


@dataclass(frozen=True)
class PathAttribute:
    path: str
    is_source: bool = True
    root_path: Optional[str] = None  # Output root for generated files, e.g. bazel-out/.../genfiles


@dataclass(frozen=True)
class ListAttribute:
    items: Tuple[Union[StringAttribute, PathAttribute], ...]


AttributeValue = Union[StringAttribute, PathAttribute, ListAttribute]


def parse_attribute(raw: Any, name: str = "<attribute>") -> AttributeValue:
    if isinstance(raw, (StringAttribute, PathAttribute, ListAttribute)):
        return raw
    if isinstance(raw, bool):
        return StringAttribute("1" if raw else "0")
    if isinstance(raw, (str, int, float)):
        return StringAttribute(str(raw))
    if isinstance(raw, Mapping):
        if "path" not in raw:
            raise AttributeTypeError(f"path attribute '{name}' is missing 'path': {raw!r}")
        return PathAttribute(
            path=str(raw["path"]),
            is_source=bool(raw.get("src", True)),
            root_path=raw.get("rootPath"),
        )
    if isinstance(raw, (list, tuple)):
        items = []
        for item in raw:
            parsed = parse_attribute(item, name)
            if isinstance(parsed, ListAttribute):
                raise AttributeTypeError(f"nested list in attribute '{name}'")
            items.append(parsed)
        return ListAttribute(tuple(items))
    raise AttributeTypeError(f"unsupported value for attribute '{name}': {raw!r}")


@dataclass(frozen=True)
class RuleEntry:
    label: BuildLabel
    type: str
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)
    source_files: Tuple[str, ...] = ()
    dependencies: FrozenSet[str] = frozenset()
    build_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        # Normalize loosely typed inputs at the boundary
        if not isinstance(self.label, BuildLabel):
            object.__setattr__(self, "label", BuildLabel(self.label))
        object.__setattr__(
            self,
            "attributes",
            {k: parse_attribute(v, k) for k, v in self.attributes.items()},
        )
        object.__setattr__(self, "source_files", tuple(self.source_files))
        object.__setattr__(self, "dependencies", frozenset(self.dependencies))

    def attribute(self, name: str) -> Optional[AttributeValue]:
        return self.attributes.get(name)

    def string_attribute(self, name: str) -> Optional[str]:
        value = self.attributes.get(name)
        if isinstance(value, StringAttribute):
            return value.value
        return None

    def path_attributes(self, name: str) -> Iterator[PathAttribute]:
        value = self.attributes.get(name)
        if isinstance(value, PathAttribute):
            yield value
        elif isinstance(value, ListAttribute):
            for item in value.items:
                if isinstance(item, PathAttribute):
                    yield item

    @staticmethod
    def from_json(data: Mapping[str, Any]) -> "RuleEntry":
        return RuleEntry(
            label=BuildLabel(data["label"]),
            type=data["type"],
            attributes=dict(data.get("attr", {})),
            source_files=tuple(data.get("srcs", [])),
            dependencies=frozenset(data.get("deps", [])),
            build_file_path=data.get("build_file"),
        )


def rule_entry_map(entries: List[RuleEntry]) -> Dict[str, RuleEntry]:
    return {entry.label.value: entry for entry in entries}
