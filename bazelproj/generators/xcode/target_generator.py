# Xcode target generator.
#
# This module converts Bazel rule entries into targets of an Xcode project model. Build
# targets shell out to Bazel for their label, indexer targets expose (path filtered) sources
# to Xcode's code model, and a single legacy "clean" target is wired as a dependency of every
# other target. All files referenced by targets are registered in one FileReferenceTree.

import logging
import posixpath
import shlex
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bazelproj.config import GlobalOptions, OptionKey, TARGET_OPTION_KEYS
from bazelproj.details.build_label import BuildLabel
from bazelproj.details.path_filter import PathFilter
from bazelproj.details.rule_entry import PathAttribute, RuleEntry
from bazelproj.errors import GenerationError, MissingRequiredAttribute, NamingCollision
from bazelproj.generators.xcode.file_tree import FileReferenceTree
from bazelproj.generators.xcode.path_classifier import main_group_for_output_folder
from bazelproj.generators.xcode.model import (
    PBXBuildFile,
    PBXContainerItemProxy,
    PBXGroup,
    PBXLegacyTarget,
    PBXNativeTarget,
    PBXProject,
    PBXShellScriptBuildPhase,
    PBXSourcesBuildPhase,
    PBXTargetDependency,
    ProductType,
    Reference,
    SourceTree,
    Target,
    XCBuildConfiguration,
    XCConfigurationList,
    XcodeProject,
)

logger = logging.getLogger(__name__)

PathFilters = Union[PathFilter, Iterable[str], None]


@dataclass(frozen=True)
class RuleType:
    product_type: ProductType
    artifact_suffix: Optional[str] = None  # Suffix of the bundle Bazel produces, if any
    # attribute name -> (build setting name, default value or None when mandatory)
    required_attributes: Mapping[str, Tuple[str, Optional[str]]] = field(
        default_factory=dict
    )
    default_settings: Mapping[str, str] = field(default_factory=dict)


RULE_TYPES: Dict[str, RuleType] = {
    "ios_application": RuleType(ProductType.APPLICATION, ".ipa"),
    "ios_test": RuleType(ProductType.UNIT_TEST_BUNDLE, ".ipa"),
    "ios_extension": RuleType(
        ProductType.APP_EXTENSION,
        ".ipa",
        required_attributes={"binary": ("BAZEL_BINARY_TARGET", None)},
        default_settings={"APPLICATION_EXTENSION_API_ONLY": "YES"},
    ),
    "apple_watch_extension": RuleType(
        ProductType.APP_EXTENSION,
        ".ipa",
        required_attributes={"binary": ("BAZEL_BINARY_TARGET", None)},
        default_settings={"APPLICATION_EXTENSION_API_ONLY": "YES"},
    ),
    "ios_framework": RuleType(ProductType.FRAMEWORK),
    "ios_binary": RuleType(ProductType.TOOL),
    "objc_binary": RuleType(ProductType.TOOL),
    "objc_library": RuleType(ProductType.STATIC_LIBRARY),
    "swift_library": RuleType(ProductType.STATIC_LIBRARY),
}

DEFAULT_RULE_TYPE = RuleType(ProductType.STATIC_LIBRARY)

# Overrides applied on top of Debug/Release for the configurations used when running tests
TEST_RUNNER_SETTINGS = {
    "DEBUG_INFORMATION_FORMAT": "dwarf",
    "ONLY_ACTIVE_ARCH": "YES",
    "OTHER_CFLAGS": "-help",
    "OTHER_LDFLAGS": "-help",
}

PROJECT_OWNER = "PROJECT"


def create_project(
    name: str,
    output_root: Optional[str] = None,
    workspace_root: Optional[str] = None,
) -> XcodeProject:
    source_tree, path = SourceTree.SOURCE_ROOT, None
    if output_root is not None and workspace_root is not None:
        source_tree, path = main_group_for_output_folder(output_root, workspace_root)
    main_group = PBXGroup(name=None, sourceTree=source_tree, path=path, group_id="main")
    config_list = XCConfigurationList(buildConfigurations=[], owner=PROJECT_OWNER)
    root = PBXProject(
        name=name,
        buildConfigurationList=config_list.ref(),
        mainGroup=main_group.ref(),
    )
    project = XcodeProject(project=root)
    for obj in (root, main_group, config_list):
        project.add(obj)
    return project


def _as_filter(path_filters: PathFilters) -> Optional[PathFilter]:
    if path_filters is None or isinstance(path_filters, PathFilter):
        return path_filters
    return PathFilter(path_filters)


def _ordered_unique(paths: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for path in paths:
        normalized = posixpath.normpath(path)
        if normalized not in seen:
            seen.add(normalized)
            result.append(path)
    return result


# Bazel options as bash array elements; the option string is split the way a shell would
def _shell_words(options: Optional[str]) -> str:
    try:
        words = shlex.split(options or "")
    except ValueError as error:
        raise GenerationError(f"cannot parse bazel build options '{options}': {error}") from error
    return " ".join(shlex.quote(word) for word in words)


# Path of a generated file as seen from the workspace (through Bazel's convenience symlinks)
def _generated_file_path(attribute: PathAttribute) -> str:
    root = (attribute.root_path or "").rstrip("/")
    if not root or root.endswith("genfiles"):
        return posixpath.join("bazel-genfiles", attribute.path)
    if root.endswith("bin"):
        return posixpath.join("bazel-bin", attribute.path)
    return posixpath.join(root, attribute.path)


def _data_model_container(path: str) -> str:
    parts = path.split("/")
    for index, part in enumerate(parts):
        if part.endswith(".xcdatamodeld"):
            return "/".join(parts[: index + 1])
    return path


class BazelTargetGenerator:
    BAZEL_CLEAN_TARGET = "_bazel_clean_"
    BUILD_CONFIGURATION_NAMES = ("Debug", "Release", "Fastbuild")
    TEST_RUNNER_BASE_CONFIGURATIONS = ("Debug", "Release")
    TEST_RUNNER_PREFIX = "__TestRunner_"
    INDEXER_PREFIX = "_indexer_"
    LINKED_HOST_ATTRIBUTES = ("xctest_app", "test_host")

    def __init__(
        self,
        bazel_path: str,
        project: XcodeProject,
        build_script_path: str = "",
        env_script_path: str = "",
        options: Optional[GlobalOptions] = None,
        file_tree: Optional[FileReferenceTree] = None,
    ):
        self.bazel_path = bazel_path
        self.project = project
        self.build_script_path = build_script_path
        self.env_script_path = env_script_path
        self.options = options if options is not None else GlobalOptions()
        self.file_tree = file_tree if file_tree is not None else FileReferenceTree(project)
        self._clean_target: Optional[PBXLegacyTarget] = None
        # label -> indexer target, None while in progress or when nothing was indexed
        self._indexer_targets: Dict[str, Optional[PBXNativeTarget]] = {}
        self._uses_test_runner = False

    @staticmethod
    def indexer_target_name(label: BuildLabel) -> str:
        return f"{BazelTargetGenerator.INDEXER_PREFIX}{label.target_name}_{label.hash_value}"

    @classmethod
    def test_runner_configuration_names(cls) -> List[str]:
        return [cls.TEST_RUNNER_PREFIX + n for n in cls.TEST_RUNNER_BASE_CONFIGURATIONS]

    # ------------------------------------------------------------------
    # Project level
    # ------------------------------------------------------------------

    def generate_top_level_build_configurations(
        self, additional_include_paths: Iterable[str] = ()
    ) -> List[XCBuildConfiguration]:
        config_list = self.project.configuration_list(self.project.project)
        existing = self.project.configurations(self.project.project)
        created = []
        for config_name in self.BUILD_CONFIGURATION_NAMES:
            if config_name in existing:
                continue
            config = self.project.add(
                XCBuildConfiguration(
                    name=config_name,
                    buildSettings=self._top_level_settings(
                        config_name, additional_include_paths
                    ),
                    owner=config_list.owner,
                )
            )
            config_list.buildConfigurations.append(config.ref())
            created.append(config)
        if self._uses_test_runner:
            self._add_test_runner_configurations(self.project.project)
        return created

    def _top_level_settings(
        self, config_name: str, additional_include_paths: Iterable[str]
    ) -> Dict[str, str]:
        include_paths = set(additional_include_paths)
        extra_includes = self.options.value(OptionKey.HEADER_SEARCH_PATHS, config_name)
        if extra_includes:
            include_paths.update(extra_includes.split())
        header_search_paths = ["$(SRCROOT)"] + [
            f"$(SRCROOT)/{p}" for p in sorted(include_paths)
        ]
        settings = {
            "ALWAYS_SEARCH_USER_PATHS": "NO",
            "CODE_SIGN_IDENTITY": "",
            "CODE_SIGNING_REQUIRED": "NO",
            "ENABLE_TESTABILITY": "YES",
            "HEADER_SEARCH_PATHS": " ".join(header_search_paths),
            "IPHONEOS_DEPLOYMENT_TARGET": self.options.value(
                OptionKey.IPHONEOS_DEPLOYMENT_TARGET, config_name
            )
            or "8.4",
            "ONLY_ACTIVE_ARCH": "YES",
        }
        sdk_root = self.options.value(OptionKey.SDKROOT, config_name)
        if sdk_root:
            settings["SDKROOT"] = sdk_root
        return settings

    def generate_file_references_for_file_paths(
        self, paths: Iterable[str], path_filters: PathFilters = None
    ) -> None:
        path_filter = _as_filter(path_filters)
        for path in paths:
            if path_filter is None or path_filter(path):
                self.file_tree.get_or_create(SourceTree.GROUP, path)

    # ------------------------------------------------------------------
    # Build targets
    # ------------------------------------------------------------------

    def generate_build_targets_for_rule_entries(
        self, entries: Iterable[RuleEntry], path_filters: PathFilters = None
    ) -> List[PBXNativeTarget]:
        entries = list(entries)
        path_filter = _as_filter(path_filters)
        # Validate the whole batch before touching the project
        taken_names = set(self.project.target_by_name)
        planned = []
        for entry in entries:
            rule_type = RULE_TYPES.get(entry.type, DEFAULT_RULE_TYPE)
            required_settings = self._required_attribute_settings(entry, rule_type)
            name = entry.label.target_name
            if name in taken_names:
                raise NamingCollision(
                    f"target name '{name}' of {entry.label} is already used in project {self.project.name}"
                )
            taken_names.add(name)
            planned.append((entry, rule_type, required_settings))

        targets_by_label: Dict[str, PBXNativeTarget] = {}
        created = []
        for entry, rule_type, required_settings in planned:
            target = self._create_build_target(entry, rule_type, required_settings)
            targets_by_label[entry.label.value] = target
            created.append(target)

        for entry in entries:
            host_label = self._linked_host_label(entry)
            if host_label is None:
                continue
            host_target = targets_by_label.get(host_label.value)
            if host_target is None:
                logger.debug(
                    "%s links to %s which is not part of this batch, skipping",
                    entry.label,
                    host_label,
                )
                continue
            self._link_to_host(
                entry, targets_by_label[entry.label.value], host_target, path_filter
            )
        return created

    def _required_attribute_settings(
        self, entry: RuleEntry, rule_type: RuleType
    ) -> Dict[str, str]:
        settings = {}
        for attribute_name, (setting_name, default) in rule_type.required_attributes.items():
            value = entry.string_attribute(attribute_name)
            if value is None:
                value = default
            if value is None:
                raise MissingRequiredAttribute(
                    f"{entry.type} rule {entry.label} requires attribute '{attribute_name}'"
                )
            settings[setting_name] = value
        return settings

    def _create_build_target(
        self, entry: RuleEntry, rule_type: RuleType, required_settings: Dict[str, str]
    ) -> PBXNativeTarget:
        label = entry.label
        name = label.target_name
        settings: Dict[str, str] = dict(rule_type.default_settings)
        settings.update(
            {
                "BAZEL_TARGET": label.value,
                "BUILD_PATH": label.package_name,
                "PRODUCT_NAME": name,
            }
        )
        if rule_type.artifact_suffix:
            settings["BAZEL_TARGET_IPA"] = posixpath.join(
                label.package_name, f"{name}{rule_type.artifact_suffix}"
            )
        settings.update(required_settings)

        settings_by_config = {}
        for config_name in self.BUILD_CONFIGURATION_NAMES:
            config_settings = dict(settings)
            for key in TARGET_OPTION_KEYS:
                value = self.options.value(key, config_name)
                if value:
                    config_settings[key.value] = value
            settings_by_config[config_name] = config_settings
        config_list = self._create_configuration_list(f"target:{name}", settings_by_config)

        phase = self.project.add(
            PBXShellScriptBuildPhase(
                shellScript=self._build_phase_script(label),
                target_name=name,
                name="Build with Bazel",
            )
        )
        target = PBXNativeTarget(
            name=name,
            buildConfigurationList=config_list.ref(),
            buildPhases=[phase.ref()],
            productName=name,
            productType=rule_type.product_type,
        )
        self._add_target(target)
        return target

    def _build_phase_script(self, label: BuildLabel) -> str:
        lines = ["set -e"]
        if self.env_script_path:
            lines.append(f"source {shlex.quote(self.env_script_path)}")
        extra_arguments = ""
        if OptionKey.BAZEL_BUILD_OPTIONS in self.options:
            # Runner configurations build with the options of the configuration they derive from
            project_value = self.options.project_value(OptionKey.BAZEL_BUILD_OPTIONS)
            lines.append(f"BAZEL_OPTIONS=({_shell_words(project_value)})")
            lines.append('case "${CONFIGURATION}" in')
            for config_name in self.BUILD_CONFIGURATION_NAMES:
                value = self.options.value(OptionKey.BAZEL_BUILD_OPTIONS, config_name)
                if value is None:
                    continue
                patterns = config_name
                if config_name in self.TEST_RUNNER_BASE_CONFIGURATIONS:
                    patterns += f"|{self.TEST_RUNNER_PREFIX}{config_name}"
                lines.append(f"  {patterns}) BAZEL_OPTIONS=({_shell_words(value)}) ;;")
            lines.append("esac")
            extra_arguments = ' "${BAZEL_OPTIONS[@]}"'
        bazel = shlex.quote(self.bazel_path)
        target = shlex.quote(label.value)
        if self.build_script_path:
            lines.append(
                f"exec {shlex.quote(self.build_script_path)} {target} --bazel {bazel}"
                + (f" --{extra_arguments}" if extra_arguments else "")
            )
        else:
            lines.append(f"exec {bazel} build{extra_arguments} {target}")
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Linkage between tests and their host applications
    # ------------------------------------------------------------------

    def _linked_host_label(self, entry: RuleEntry) -> Optional[BuildLabel]:
        for attribute_name in self.LINKED_HOST_ATTRIBUTES:
            value = entry.string_attribute(attribute_name)
            if value:
                return BuildLabel(value)
        return None

    def _link_to_host(
        self,
        entry: RuleEntry,
        target: PBXNativeTarget,
        host_target: PBXNativeTarget,
        path_filter: Optional[PathFilter],
    ) -> None:
        host_name = host_target.name
        for config in self.project.configurations(target).values():
            config.buildSettings["TEST_HOST"] = (
                f"$(BUILT_PRODUCTS_DIR)/{host_name}.app/{host_name}"
            )
            config.buildSettings["BUNDLE_LOADER"] = "$(TEST_HOST)"
        self._add_dependency(target, host_target)

        sources = _ordered_unique(entry.source_files)
        if path_filter is not None:
            sources = path_filter.filter(sources)
        if sources:
            phase = self._create_sources_phase(
                target.name, [(SourceTree.GROUP, s) for s in sources]
            )
            target.buildPhases.insert(0, phase.ref())
            self._add_test_runner_configurations(target)
        self._add_test_runner_configurations(host_target)

    def _add_test_runner_configurations(self, owner: Union[Target, PBXProject]) -> None:
        self._uses_test_runner = True
        config_list = self.project.configuration_list(owner)
        configs = self.project.configurations(owner)
        for base_name in self.TEST_RUNNER_BASE_CONFIGURATIONS:
            runner_name = self.TEST_RUNNER_PREFIX + base_name
            if runner_name in configs:
                continue
            base = configs.get(base_name)
            settings = dict(base.buildSettings) if base is not None else {}
            settings.update(TEST_RUNNER_SETTINGS)
            config = self.project.add(
                XCBuildConfiguration(
                    name=runner_name, buildSettings=settings, owner=config_list.owner
                )
            )
            config_list.buildConfigurations.append(config.ref())
        # Project configurations must offer every name any target does
        project_root = self.project.project
        if owner is not project_root and self.project.configurations(project_root):
            self._add_test_runner_configurations(project_root)

    # ------------------------------------------------------------------
    # Indexer targets
    # ------------------------------------------------------------------

    def generate_indexer_target_for_rule_entry(
        self,
        entry: RuleEntry,
        rule_entry_map: Mapping[str, RuleEntry],
        path_filters: PathFilters,
    ) -> Optional[PBXNativeTarget]:
        path_filter = _as_filter(path_filters)
        # Depth-first over dependencies with an explicit stack; an entry is built once
        # all of its dependencies have been
        stack: List[Tuple[RuleEntry, bool]] = [(entry, False)]
        while stack:
            current, expanded = stack.pop()
            label = current.label.value
            if expanded:
                self._indexer_targets[label] = self._create_indexer_target(
                    current, rule_entry_map, path_filter
                )
                continue
            if label in self._indexer_targets:
                continue
            # Mark as visited first so cyclic dependency chains terminate
            self._indexer_targets[label] = None
            build_file = current.build_file_path
            if build_file and (path_filter is None or path_filter(build_file)):
                self.file_tree.get_or_create(SourceTree.GROUP, build_file)
            stack.append((current, True))
            for dependency in sorted(current.dependencies, reverse=True):
                dependency_entry = rule_entry_map.get(BuildLabel(dependency).value)
                if dependency_entry is not None:
                    stack.append((dependency_entry, False))
        return self._indexer_targets[entry.label.value]

    def _create_indexer_target(
        self,
        entry: RuleEntry,
        rule_entry_map: Mapping[str, RuleEntry],
        path_filter: Optional[PathFilter],
    ) -> Optional[PBXNativeTarget]:
        def included(path: str) -> bool:
            return path_filter is None or path_filter(path)

        dependency_indexers = []
        for dependency in sorted(entry.dependencies):
            dependency_entry = rule_entry_map.get(BuildLabel(dependency).value)
            if dependency_entry is None:
                continue
            dependency_target = self._indexer_targets.get(dependency_entry.label.value)
            if dependency_target is not None:
                dependency_indexers.append(dependency_target)

        phase_files = [
            (SourceTree.GROUP, path)
            for path in _ordered_unique(entry.source_files)
            if included(path)
        ]
        phase_files.extend(self._data_model_files(entry, included))

        settings: Dict[str, str] = {}
        for attribute in entry.path_attributes("pch"):
            settings["GCC_PREFIX_HEADER"] = self._setting_path(attribute)
        for attribute in entry.path_attributes("bridging_header"):
            settings["SWIFT_OBJC_BRIDGING_HEADER"] = self._setting_path(attribute)

        if not phase_files and not settings:
            logger.debug("%s has nothing to index, no indexer generated", entry.label)
            return None

        name = self.indexer_target_name(entry.label)
        if name in self.project.target_by_name:
            raise NamingCollision(f"indexer target '{name}' for {entry.label} already exists")
        settings["PRODUCT_NAME"] = name
        config_list = self._create_configuration_list(
            f"target:{name}",
            {config_name: dict(settings) for config_name in self.BUILD_CONFIGURATION_NAMES},
        )
        phases = []
        if phase_files:
            phases.append(self._create_sources_phase(name, phase_files).ref())
        target = PBXNativeTarget(
            name=name,
            buildConfigurationList=config_list.ref(),
            buildPhases=phases,
            productName=name,
            productType=ProductType.STATIC_LIBRARY,
        )
        self._add_target(target)
        for dependency_target in dependency_indexers:
            self._add_dependency(target, dependency_target)
        return target

    def _data_model_files(self, entry: RuleEntry, included) -> List[Tuple[SourceTree, str]]:
        files = []
        seen = set()
        for attribute in entry.path_attributes("datamodels"):
            container = _data_model_container(attribute.path)
            if container in seen:
                continue
            seen.add(container)
            if attribute.is_source:
                if included(container):
                    files.append((SourceTree.GROUP, container))
            else:
                files.append((SourceTree.BUILT_PRODUCTS_DIR, container))
        return files

    @staticmethod
    def _setting_path(attribute: PathAttribute) -> str:
        if attribute.is_source:
            return f"$(SRCROOT)/{attribute.path}"
        return _generated_file_path(attribute)

    # ------------------------------------------------------------------
    # Clean utility target
    # ------------------------------------------------------------------

    def generate_bazel_clean_target(
        self, script_path: str, working_directory: str = ""
    ) -> PBXLegacyTarget:
        if self._clean_target is not None or self.BAZEL_CLEAN_TARGET in self.project.target_by_name:
            raise NamingCollision(f"'{self.BAZEL_CLEAN_TARGET}' target already exists")
        name = self.BAZEL_CLEAN_TARGET
        config_list = self._create_configuration_list(
            f"target:{name}", {c: {} for c in self.BUILD_CONFIGURATION_NAMES}
        )
        target = PBXLegacyTarget(
            name=name,
            buildConfigurationList=config_list.ref(),
            buildToolPath=script_path,
            # The bazel binary is the script's only argument
            buildArgumentsString=f'"{self.bazel_path}"',
            buildWorkingDirectory=working_directory,
            productName=name,
        )
        self._add_target(target)
        self._clean_target = target
        for existing in self.project.targets:
            if existing is not target:
                self._add_dependency(existing, target)
        return target

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _create_configuration_list(
        self, owner: str, settings_by_config: Dict[str, Dict[str, str]]
    ) -> XCConfigurationList:
        configs = [
            self.project.add(
                XCBuildConfiguration(name=config_name, buildSettings=settings, owner=owner)
            )
            for config_name, settings in settings_by_config.items()
        ]
        return self.project.add(
            XCConfigurationList(
                buildConfigurations=[c.ref() for c in configs],
                defaultConfigurationName="Release",
                owner=owner,
            )
        )

    def _create_sources_phase(
        self, target_name: str, files: List[Tuple[SourceTree, str]]
    ) -> PBXSourcesBuildPhase:
        build_files = []
        seen = set()
        for source_tree, path in files:
            file_ref = self.file_tree.get_or_create(source_tree, path)
            # Distinct spellings of one path share a file reference
            if file_ref.id in seen:
                continue
            seen.add(file_ref.id)
            build_file = self.project.add(
                PBXBuildFile(fileRef=file_ref.ref(), target_name=target_name)
            )
            build_files.append(build_file.ref())
        return self.project.add(
            PBXSourcesBuildPhase(files=build_files, target_name=target_name)
        )

    def _add_target(self, target: Target) -> None:
        if target.name in self.project.target_by_name:
            raise NamingCollision(
                f"target name '{target.name}' is already used in project {self.project.name}"
            )
        self.project.add(target)
        self.project.project.targets.append(target.ref())
        if self._clean_target is not None:
            self._add_dependency(target, self._clean_target)

    def _add_dependency(self, target: Target, dependency: Target) -> None:
        if any(d is dependency for d in self.project.dependency_targets(target)):
            return
        proxy = self.project.add(
            PBXContainerItemProxy(
                containerPortal=Reference(self.project.project.id, "Project object"),
                remoteGlobalIDString=dependency.id,
                remoteInfo=dependency.name,
                owner=target.name,
            )
        )
        target_dependency = self.project.add(
            PBXTargetDependency(targetProxy=proxy.ref(), target=dependency.ref())
        )
        target.dependencies.append(target_dependency.ref())
