import posixpath
from typing import Dict, Iterator, List, Optional, Tuple, Union

from bazelproj.errors import FileReferenceConflict
from bazelproj.generators.xcode.model import (
    FileType,
    PBXFileReference,
    PBXGroup,
    SourceTree,
    XcodeProject,
)

# Origins addressed relative to the main group (which is itself anchored to the workspace)
WORKSPACE_ORIGINS = frozenset({SourceTree.GROUP, SourceTree.SOURCE_ROOT})

# Top-level groups holding references that do not live in the workspace
ORIGIN_GROUP_NAMES = {
    SourceTree.BUILT_PRODUCTS_DIR: "_generated_",
    SourceTree.ABSOLUTE: "_absolute_",
}


def normalize_path(path: str) -> str:
    normalized = posixpath.normpath(path)
    if posixpath.isabs(normalized) or normalized in (".", "..") or normalized.startswith("../"):
        raise FileReferenceConflict(f"cannot reference '{path}' in the project tree")
    return normalized


class FileReferenceTree:
    """Deduplicating tree of groups and file references rooted at the project's main group.

    Every file mentioned by any target is registered here exactly once. Requesting the
    same path again returns the same PBXFileReference instance.
    """

    def __init__(self, project: XcodeProject):
        self.project = project
        self.main_group = project.main_group
        self._groups: Dict[Tuple[SourceTree, str], PBXGroup] = {}
        self._references: Dict[str, PBXFileReference] = {}
        self._origins: Dict[str, SourceTree] = {}

    def get_or_create(self, source_tree: SourceTree, path: str) -> PBXFileReference:
        origin = SourceTree.GROUP if source_tree in WORKSPACE_ORIGINS else source_tree
        # Absolute paths never resolve against the workspace
        if origin == SourceTree.GROUP and posixpath.isabs(path):
            origin = SourceTree.ABSOLUTE
        if origin == SourceTree.ABSOLUTE:
            path = path.lstrip("/")
        normalized = normalize_path(path)
        known_origin = self._origins.get(normalized)
        if known_origin is not None and known_origin != origin:
            raise FileReferenceConflict(
                f"'{normalized}' is referenced as both {known_origin.name} and {origin.name}"
            )
        if normalized in self._references:
            return self._references[normalized]
        if (origin, normalized) in self._groups:
            raise FileReferenceConflict(
                f"'{normalized}' is referenced both as a directory and as a file"
            )

        directory, filename = posixpath.split(normalized)
        parent = self._get_or_create_group(origin, directory)
        reference = self.project.add(
            PBXFileReference(
                name=None,
                path=filename,
                sourceTree=SourceTree.GROUP,
                lastKnownFileType=FileType.from_extension(posixpath.splitext(filename)[1]),
                full_path=f"{origin.name}:{normalized}",
                parent=parent.id,
            )
        )
        parent.children.append(reference.ref())
        self._references[normalized] = reference
        self._origins[normalized] = origin
        return reference

    def get_or_create_group(self, path: str) -> PBXGroup:
        return self._get_or_create_group(SourceTree.GROUP, normalize_path(path))

    def _origin_root(self, origin: SourceTree) -> PBXGroup:
        if origin == SourceTree.GROUP:
            return self.main_group
        key = (origin, "")
        if key not in self._groups:
            group = self.project.add(
                PBXGroup(
                    name=ORIGIN_GROUP_NAMES[origin],
                    sourceTree=origin,
                    path="/" if origin == SourceTree.ABSOLUTE else None,
                    group_id=f"origin:{origin.name}",
                    parent=self.main_group.id,
                )
            )
            self.main_group.children.append(group.ref())
            self._groups[key] = group
        return self._groups[key]

    def _get_or_create_group(self, origin: SourceTree, directory: str) -> PBXGroup:
        group = self._origin_root(origin)
        if not directory:
            return group
        current = ""
        for segment in directory.split("/"):
            current = posixpath.join(current, segment)
            key = (origin, current)
            if key not in self._groups:
                if current in self._references:
                    raise FileReferenceConflict(
                        f"'{current}' is referenced both as a file and as a directory"
                    )
                child = self.project.add(
                    PBXGroup(
                        name=None,
                        sourceTree=SourceTree.GROUP,
                        path=segment,
                        group_id=f"{origin.name}:{current}",
                        parent=group.id,
                    )
                )
                group.children.append(child.ref())
                self._groups[key] = child
            group = self._groups[key]
        return group

    def find(self, path: str) -> Optional[PBXFileReference]:
        return self._references.get(posixpath.normpath(path).lstrip("/"))

    def origin_of(self, reference: PBXFileReference) -> SourceTree:
        return self._origins[self.full_path(reference)]

    # Path of a node relative to its origin root, rebuilt by walking parent links
    def full_path(self, node: Union[PBXGroup, PBXFileReference]) -> str:
        segments: List[str] = []
        current: Optional[Union[PBXGroup, PBXFileReference]] = node
        while current is not None and current.parent is not None:
            if current.path is not None and current.sourceTree == SourceTree.GROUP:
                segments.append(current.path)
            parent = self.project.get(current.parent)
            assert isinstance(parent, PBXGroup)
            current = parent
        return "/".join(reversed(segments))

    def all_file_references(self) -> Iterator[PBXFileReference]:
        yield from self._references.values()

    def __contains__(self, path: str) -> bool:
        return posixpath.normpath(path).lstrip("/") in self._references

    def __len__(self) -> int:
        return len(self._references)
