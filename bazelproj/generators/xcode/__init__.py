import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from bazelproj.config import GlobalOptions
from bazelproj.details.build_label import BuildLabel
from bazelproj.details.path_filter import PathFilter
from bazelproj.details.rule_entry import RuleEntry, rule_entry_map
from bazelproj.errors import GenerationError
from bazelproj.generators.xcode.formatter import format_xcode_project
from bazelproj.generators.xcode.model import XcodeProject
from bazelproj.generators.xcode.target_generator import BazelTargetGenerator, create_project
from bazelproj.generators.xcode.validator import (
    validate_build_phase_files,
    validate_configuration_names,
    validate_paths,
    validate_references,
    validate_target_names,
)

logger = logging.getLogger(__name__)


# Entries no other entry depends on, plus the hosts they link against...
def top_level_entries(entries: Sequence[RuleEntry]) -> List[RuleEntry]:
    depended_on = {BuildLabel(d).value for entry in entries for d in entry.dependencies}
    selected = [e for e in entries if e.label.value not in depended_on]
    hosts = set()
    for entry in selected:
        for attribute_name in BazelTargetGenerator.LINKED_HOST_ATTRIBUTES:
            value = entry.string_attribute(attribute_name)
            if value:
                hosts.add(BuildLabel(value).value)
    selected_labels = {e.label.value for e in selected}
    return [e for e in entries if e.label.value in selected_labels or e.label.value in hosts]


def generate_project(
    entries: Iterable[RuleEntry],
    options: Optional[GlobalOptions],
    *,
    project_name: str,
    bazel_path: str,
    workspace_root: str,
    output_root: str,
    path_filters: Iterable[str],
    build_script_path: str = "",
    env_script_path: str = "",
    clean_script_path: Optional[str] = None,
    clean_working_directory: str = "",
    additional_include_paths: Iterable[str] = (),
) -> XcodeProject:
    entries = list(entries)
    path_filter = PathFilter(path_filters)

    # Generate project model
    project = create_project(project_name, output_root, workspace_root)
    generator = BazelTargetGenerator(
        bazel_path,
        project,
        build_script_path=build_script_path,
        env_script_path=env_script_path,
        options=options,
    )
    generator.generate_top_level_build_configurations(additional_include_paths)
    build_files = sorted({e.build_file_path for e in entries if e.build_file_path})
    generator.generate_file_references_for_file_paths(build_files, path_filter)

    selected = top_level_entries(entries)
    logger.debug("generating build targets for %d of %d rules", len(selected), len(entries))
    generator.generate_build_targets_for_rule_entries(selected, path_filter)

    entry_map = rule_entry_map(entries)
    for entry in entries:
        generator.generate_indexer_target_for_rule_entry(entry, entry_map, path_filter)

    if clean_script_path:
        generator.generate_bazel_clean_target(clean_script_path, clean_working_directory)

    # Validate references, names and build phase files
    errors = (
        validate_references(project)
        + validate_target_names(project)
        + validate_configuration_names(project)
        + validate_build_phase_files(project)
    )
    if errors:
        raise GenerationError(f"Invalid project: {errors}")
    return project


def write_project(project: XcodeProject, output_root: str) -> Path:
    project_dir = Path(output_root) / f"{project.name}.xcodeproj"
    project_dir.mkdir(parents=True, exist_ok=True)
    project_file = project_dir / "project.pbxproj"
    # Generate new file contents...
    contents = format_xcode_project(project)
    # Leave an identical file alone so its timestamp is not bumped...
    try:
        with project_file.open("r", encoding="utf-8") as f:
            if f.read() == contents:
                return project_file
    except FileNotFoundError:
        pass
    with project_file.open("w", encoding="utf-8") as f:
        f.write(contents)
    return project_file


class XcodeGenerator:
    def __init__(
        self,
        entries: Iterable[RuleEntry],
        options: Optional[GlobalOptions],
        *,
        project_name: str,
        bazel_path: str,
        workspace_root: str,
        output_root: str,
        path_filters: Iterable[str],
        build_script_path: str = "",
        env_script_path: str = "",
        clean_script_path: Optional[str] = None,
        clean_working_directory: str = "",
        check_paths: bool = False,
    ):
        if not project_name:
            raise ValueError("Xcode generator requires a project name")
        self.entries = list(entries)
        self.options = options
        self.project_name = project_name
        self.bazel_path = bazel_path
        self.workspace_root = workspace_root
        self.output_root = output_root
        self.path_filters = list(path_filters)
        self.build_script_path = build_script_path
        self.env_script_path = env_script_path
        self.clean_script_path = clean_script_path
        self.clean_working_directory = clean_working_directory
        self.check_paths = check_paths

    def __call__(self) -> Path:
        """Generate the Xcode project and write it below the output root."""
        project = generate_project(
            self.entries,
            self.options,
            project_name=self.project_name,
            bazel_path=self.bazel_path,
            workspace_root=self.workspace_root,
            output_root=self.output_root,
            path_filters=self.path_filters,
            build_script_path=self.build_script_path,
            env_script_path=self.env_script_path,
            clean_script_path=self.clean_script_path,
            clean_working_directory=self.clean_working_directory,
        )
        if self.check_paths:
            if errors := validate_paths(project, self.workspace_root):
                raise GenerationError(f"Invalid project paths: {errors}")
        return write_project(project, self.output_root)
