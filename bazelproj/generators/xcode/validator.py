import os
from collections import Counter
from dataclasses import fields, is_dataclass
from typing import Any, List, Set

from bazelproj.generators.xcode.model import (
    PBXBuildFile,
    PBXFileReference,
    PBXGroup,
    PBXSourcesBuildPhase,
    Reference,
    SourceTree,
    XcodeProject,
)


def collect_ids(project: XcodeProject) -> Set[str]:
    return set(project.objects)


def validate_references(project: XcodeProject) -> List[str]:
    errors = []
    all_ids = collect_ids(project)

    def check_references(obj: Any, context: str):
        if isinstance(obj, Reference):
            if obj.id not in all_ids:
                errors.append(f"Invalid reference in {context}: {obj.id}")
        elif isinstance(obj, list):
            for index, item in enumerate(obj):
                check_references(item, f"{context}[{index}]")
        elif isinstance(obj, dict):
            for key, value in obj.items():
                check_references(value, f"{context}.{key}")
        elif is_dataclass(obj):
            for field in fields(obj):
                check_references(getattr(obj, field.name), f"{context}.{field.name}")

    if project.project.id not in all_ids:
        errors.append(f"Root object {project.project.id} is not part of the project")
    for object_id, obj in project.objects.items():
        if obj.id != object_id:
            errors.append(f"Object {obj.key()} is stored under foreign id {object_id}")
        check_references(obj, f"{obj.__class__.__name__}({object_id})")

    return errors


def validate_target_names(project: XcodeProject) -> List[str]:
    counts = Counter(target.name for target in project.targets)
    return [f"Duplicate target name: {name}" for name, count in sorted(counts.items()) if count > 1]


# Configurations selected at project level must exist there, so every configuration a
# target offers must also be offered by the project (once it has any)...
def validate_configuration_names(project: XcodeProject) -> List[str]:
    errors = []
    project_names = set(project.configurations(project.project))
    if not project_names:
        return errors
    for target in project.targets:
        unknown = set(project.configurations(target)) - project_names
        if unknown:
            errors.append(f"Target {target.name} has configurations unknown to the project: {sorted(unknown)}")
    return errors


def validate_build_phase_files(project: XcodeProject) -> List[str]:
    errors = []
    reachable = set()

    def walk(group: PBXGroup):
        for child_ref in group.children:
            child = project.get(child_ref)
            reachable.add(child.id)
            if isinstance(child, PBXGroup):
                walk(child)

    walk(project.main_group)
    for phase in project.objects_of_type(PBXSourcesBuildPhase):
        for build_file_ref in phase.files:
            build_file = project.get(build_file_ref)
            assert isinstance(build_file, PBXBuildFile)
            if build_file.fileRef.id not in reachable:
                errors.append(
                    f"Build file {build_file.id} of {phase.target_name} references a file outside the main group"
                )
    return errors


def validate_paths(project: XcodeProject, workspace_root: str) -> List[str]:
    errors = []
    for reference in project.objects_of_type(PBXFileReference):
        origin, _, path = reference.full_path.partition(":")
        # Generated files only exist after a build
        if origin != SourceTree.GROUP.name:
            continue
        full_path = os.path.join(workspace_root, path)
        if not os.path.exists(full_path):
            errors.append(f"File not found: {full_path}")
    return errors
