import unittest
from typing import Dict, List, Optional

from bazelproj.config import GlobalOptions, OptionKey
from bazelproj.details.build_label import BuildLabel
from bazelproj.details.rule_entry import RuleEntry, rule_entry_map
from bazelproj.errors import GenerationError, MissingRequiredAttribute, NamingCollision
from bazelproj.generators.xcode.model import (
    FileType,
    PBXBuildFile,
    PBXLegacyTarget,
    PBXNativeTarget,
    PBXShellScriptBuildPhase,
    PBXSourcesBuildPhase,
    ProductType,
)
from bazelproj.generators.xcode.target_generator import BazelTargetGenerator, create_project

BAZEL_PATH = "/path/to/bazel"
BUILD_SCRIPT_PATH = "/path/to/buildScript.py"

STANDARD_CONFIGS = {"Debug", "Release", "Fastbuild"}
RUNNER_CONFIGS = {"__TestRunner_Debug", "__TestRunner_Release"}


def app_entry(**attributes) -> RuleEntry:
    return RuleEntry("test/app:TestApplication", "ios_application", attributes)


def bundle_entry(sources=(), host="test/app:TestApplication") -> RuleEntry:
    return RuleEntry(
        "test/testbundle:TestBundle",
        "ios_test",
        {"xctest_app": host},
        source_files=sources,
    )


class GeneratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.project = create_project("TestProject")
        self.generator = self.make_generator()

    def make_generator(self, options: Optional[GlobalOptions] = None, **kwargs) -> BazelTargetGenerator:
        kwargs.setdefault("bazel_path", BAZEL_PATH)
        kwargs.setdefault("build_script_path", BUILD_SCRIPT_PATH)
        return BazelTargetGenerator(project=self.project, options=options, **kwargs)

    def settings(self, target) -> Dict[str, Dict[str, str]]:
        return {name: c.buildSettings for name, c in self.project.configurations(target).items()}

    def phase_paths(self, phase: PBXSourcesBuildPhase) -> List[str]:
        result = []
        for ref in phase.files:
            build_file = self.project.get(ref)
            assert isinstance(build_file, PBXBuildFile)
            result.append(self.project.get(build_file.fileRef).full_path)
        return result


class TestBuildTargets(GeneratorTestCase):
    def test_application_target(self) -> None:
        (target,) = self.generator.generate_build_targets_for_rule_entries([app_entry()])
        self.assertIsInstance(target, PBXNativeTarget)
        self.assertEqual(target.name, "TestApplication")
        self.assertEqual(target.productType, ProductType.APPLICATION)
        self.assertEqual(self.project.targets, [target])
        expected = {
            "BAZEL_TARGET": "test/app:TestApplication",
            "BAZEL_TARGET_IPA": "test/app/TestApplication.ipa",
            "BUILD_PATH": "test/app",
            "PRODUCT_NAME": "TestApplication",
        }
        self.assertEqual(self.settings(target), {name: expected for name in STANDARD_CONFIGS})

        (phase,) = self.project.build_phases(target)
        self.assertIsInstance(phase, PBXShellScriptBuildPhase)
        self.assertIn(BAZEL_PATH, phase.shellScript)
        self.assertIn(BUILD_SCRIPT_PATH, phase.shellScript)
        self.assertIn(
            "exec /path/to/buildScript.py test/app:TestApplication --bazel /path/to/bazel",
            phase.shellScript,
        )
        self.assertNotIn("source ", phase.shellScript)

    def test_library_has_no_bundle(self) -> None:
        entry = RuleEntry("test/lib:Lib", "objc_library")
        (target,) = self.generator.generate_build_targets_for_rule_entries([entry])
        self.assertEqual(target.productType, ProductType.STATIC_LIBRARY)
        self.assertNotIn("BAZEL_TARGET_IPA", self.settings(target)["Debug"])

    def test_unknown_rule_type(self) -> None:
        entry = RuleEntry("test/gen:Gen", "genrule")
        (target,) = self.generator.generate_build_targets_for_rule_entries([entry])
        self.assertEqual(target.productType, ProductType.STATIC_LIBRARY)

    def test_without_build_script(self) -> None:
        generator = self.make_generator(build_script_path="", env_script_path="/path/to/env.sh")
        (target,) = generator.generate_build_targets_for_rule_entries([app_entry()])
        (phase,) = self.project.build_phases(target)
        self.assertIn("source /path/to/env.sh\n", phase.shellScript)
        self.assertIn("exec /path/to/bazel build test/app:TestApplication\n", phase.shellScript)

    def test_target_options(self) -> None:
        options = GlobalOptions(
            {
                OptionKey.SDKROOT: "iphoneos",
                OptionKey.OTHER_CFLAGS: {"project": "-DFOO", "Debug": "-DDEBUG"},
                OptionKey.OTHER_SWIFT_FLAGS: {"Release": "-O"},
            }
        )
        generator = self.make_generator(options)
        (target,) = generator.generate_build_targets_for_rule_entries([app_entry()])
        settings = self.settings(target)
        self.assertEqual(settings["Debug"]["OTHER_CFLAGS"], "-DDEBUG")
        self.assertEqual(settings["Release"]["OTHER_CFLAGS"], "-DFOO")
        self.assertEqual(settings["Fastbuild"]["OTHER_CFLAGS"], "-DFOO")
        self.assertEqual(settings["Release"]["OTHER_SWIFT_FLAGS"], "-O")
        self.assertNotIn("OTHER_SWIFT_FLAGS", settings["Debug"])
        self.assertNotIn("OTHER_LDFLAGS", settings["Debug"])
        self.assertNotIn("SDKROOT", settings["Debug"])

    def test_build_options_follow_configuration(self) -> None:
        options = GlobalOptions(
            {OptionKey.BAZEL_BUILD_OPTIONS: {"project": "--config=ios", "Debug": "-c dbg"}}
        )
        generator = self.make_generator(options)
        (target,) = generator.generate_build_targets_for_rule_entries([app_entry()])
        script = self.project.build_phases(target)[0].shellScript
        self.assertIn("BAZEL_OPTIONS=(--config=ios)\n", script)
        self.assertIn("Debug|__TestRunner_Debug) BAZEL_OPTIONS=(-c dbg) ;;", script)
        self.assertIn("Fastbuild) BAZEL_OPTIONS=(--config=ios) ;;", script)
        self.assertIn('-- "${BAZEL_OPTIONS[@]}"\n', script)

    def test_script_values_are_shell_quoted(self) -> None:
        options = GlobalOptions(
            {OptionKey.BAZEL_BUILD_OPTIONS: {"project": '--define="a b" --copt=$HOME'}}
        )
        generator = self.make_generator(
            options,
            build_script_path="",
            env_script_path="/path/with space/env.sh",
            bazel_path="/tools/my bazel",
        )
        (target,) = generator.generate_build_targets_for_rule_entries([app_entry()])
        script = self.project.build_phases(target)[0].shellScript
        self.assertIn("source '/path/with space/env.sh'\n", script)
        self.assertIn("BAZEL_OPTIONS=('--define=a b' '--copt=$HOME')\n", script)
        self.assertIn(
            "exec '/tools/my bazel' build \"${BAZEL_OPTIONS[@]}\" test/app:TestApplication\n",
            script,
        )

    def test_unbalanced_build_options(self) -> None:
        options = GlobalOptions({OptionKey.BAZEL_BUILD_OPTIONS: '--define="a b'})
        generator = self.make_generator(options)
        with self.assertRaises(GenerationError):
            generator.generate_build_targets_for_rule_entries([app_entry()])

    def test_extension_requires_binary(self) -> None:
        entries = [app_entry(), RuleEntry("test/ext:Ext", "ios_extension")]
        with self.assertRaises(MissingRequiredAttribute):
            self.generator.generate_build_targets_for_rule_entries(entries)
        self.assertEqual(self.project.targets, [])

    def test_extension_settings(self) -> None:
        entry = RuleEntry("test/ext:Ext", "ios_extension", {"binary": "test/ext:ExtBinary"})
        (target,) = self.generator.generate_build_targets_for_rule_entries([entry])
        settings = self.settings(target)["Debug"]
        self.assertEqual(settings["BAZEL_BINARY_TARGET"], "test/ext:ExtBinary")
        self.assertEqual(settings["APPLICATION_EXTENSION_API_ONLY"], "YES")
        self.assertEqual(target.productType, ProductType.APP_EXTENSION)

    def test_name_collision_in_batch(self) -> None:
        entries = [RuleEntry("a:Foo", "objc_library"), RuleEntry("b:Foo", "objc_library")]
        with self.assertRaises(NamingCollision):
            self.generator.generate_build_targets_for_rule_entries(entries)
        self.assertEqual(self.project.targets, [])

    def test_name_collision_with_existing_target(self) -> None:
        self.generator.generate_build_targets_for_rule_entries([app_entry()])
        with self.assertRaises(NamingCollision):
            self.generator.generate_build_targets_for_rule_entries(
                [RuleEntry("other:TestApplication", "ios_application")]
            )
        self.assertEqual(len(self.project.targets), 1)


class TestLinkage(GeneratorTestCase):
    def test_test_without_sources(self) -> None:
        # The dependent comes first, linkage is resolved once the batch exists
        test, app = self.generator.generate_build_targets_for_rule_entries(
            [bundle_entry(), app_entry()]
        )
        test_settings = self.settings(test)
        self.assertEqual(set(test_settings), STANDARD_CONFIGS)
        for settings in test_settings.values():
            self.assertEqual(
                settings["TEST_HOST"], "$(BUILT_PRODUCTS_DIR)/TestApplication.app/TestApplication"
            )
            self.assertEqual(settings["BUNDLE_LOADER"], "$(TEST_HOST)")
            self.assertEqual(settings["BAZEL_TARGET_IPA"], "test/testbundle/TestBundle.ipa")
        self.assertEqual(self.project.dependency_targets(test), [app])
        self.assertEqual(self.project.dependency_targets(app), [])
        self.assertEqual(len(test.buildPhases), 1)

        app_settings = self.settings(app)
        self.assertEqual(set(app_settings), STANDARD_CONFIGS | RUNNER_CONFIGS)
        runner = app_settings["__TestRunner_Debug"]
        self.assertEqual(runner["BAZEL_TARGET"], "test/app:TestApplication")
        self.assertEqual(runner["DEBUG_INFORMATION_FORMAT"], "dwarf")
        self.assertEqual(runner["ONLY_ACTIVE_ARCH"], "YES")
        self.assertEqual(runner["OTHER_CFLAGS"], "-help")
        self.assertEqual(runner["OTHER_LDFLAGS"], "-help")

    def test_test_with_sources(self) -> None:
        app, test = self.generator.generate_build_targets_for_rule_entries(
            [app_entry(), bundle_entry(sources=["test/testbundle/src1.m"])]
        )
        phases = self.project.build_phases(test)
        self.assertEqual(
            [type(p) for p in phases], [PBXSourcesBuildPhase, PBXShellScriptBuildPhase]
        )
        self.assertEqual(self.phase_paths(phases[0]), ["GROUP:test/testbundle/src1.m"])
        test_settings = self.settings(test)
        self.assertEqual(set(test_settings), STANDARD_CONFIGS | RUNNER_CONFIGS)
        self.assertEqual(test_settings["__TestRunner_Release"]["BUNDLE_LOADER"], "$(TEST_HOST)")
        self.assertEqual(set(self.settings(app)), STANDARD_CONFIGS | RUNNER_CONFIGS)

    def test_filtered_out_sources(self) -> None:
        app, test = self.generator.generate_build_targets_for_rule_entries(
            [app_entry(), bundle_entry(sources=["test/testbundle/src1.m"])],
            path_filters=["elsewhere"],
        )
        self.assertEqual(len(test.buildPhases), 1)
        self.assertEqual(set(self.settings(test)), STANDARD_CONFIGS)
        # The host is linked even though the dependent has nothing to compile
        self.assertEqual(set(self.settings(app)), STANDARD_CONFIGS | RUNNER_CONFIGS)

    def test_unknown_host_is_ignored(self) -> None:
        (test,) = self.generator.generate_build_targets_for_rule_entries(
            [bundle_entry(host="test/missing:App")]
        )
        self.assertNotIn("TEST_HOST", self.settings(test)["Debug"])
        self.assertEqual(test.dependencies, [])

    def test_runner_configurations_reach_the_project(self) -> None:
        self.generator.generate_top_level_build_configurations()
        self.generator.generate_build_targets_for_rule_entries([app_entry(), bundle_entry()])
        project_settings = self.settings(self.project.project)
        self.assertEqual(set(project_settings), STANDARD_CONFIGS | RUNNER_CONFIGS)
        self.assertEqual(project_settings["__TestRunner_Debug"]["ENABLE_TESTABILITY"], "YES")

    def test_runner_configurations_added_with_late_top_level_configurations(self) -> None:
        self.generator.generate_build_targets_for_rule_entries([app_entry(), bundle_entry()])
        self.assertEqual(self.settings(self.project.project), {})
        self.generator.generate_top_level_build_configurations()
        self.assertEqual(
            set(self.settings(self.project.project)), STANDARD_CONFIGS | RUNNER_CONFIGS
        )


class TestTopLevelConfigurations(GeneratorTestCase):
    def test_settings(self) -> None:
        generator = self.make_generator(GlobalOptions({OptionKey.SDKROOT: "iphoneos"}))
        generator.generate_top_level_build_configurations(["include/paths", "additional"])
        expected = {
            "ALWAYS_SEARCH_USER_PATHS": "NO",
            "CODE_SIGN_IDENTITY": "",
            "CODE_SIGNING_REQUIRED": "NO",
            "ENABLE_TESTABILITY": "YES",
            "HEADER_SEARCH_PATHS": "$(SRCROOT) $(SRCROOT)/additional $(SRCROOT)/include/paths",
            "IPHONEOS_DEPLOYMENT_TARGET": "8.4",
            "ONLY_ACTIVE_ARCH": "YES",
            "SDKROOT": "iphoneos",
        }
        self.assertEqual(
            self.settings(self.project.project), {name: expected for name in STANDARD_CONFIGS}
        )

    def test_header_search_path_option(self) -> None:
        generator = self.make_generator(
            GlobalOptions(
                {
                    OptionKey.HEADER_SEARCH_PATHS: "third_party/include",
                    OptionKey.IPHONEOS_DEPLOYMENT_TARGET: "12.0",
                }
            )
        )
        generator.generate_top_level_build_configurations()
        settings = self.settings(self.project.project)["Release"]
        self.assertEqual(settings["HEADER_SEARCH_PATHS"], "$(SRCROOT) $(SRCROOT)/third_party/include")
        self.assertEqual(settings["IPHONEOS_DEPLOYMENT_TARGET"], "12.0")
        self.assertNotIn("SDKROOT", settings)

    def test_build_file_references(self) -> None:
        self.generator.generate_file_references_for_file_paths(
            ["some/path/BUILD", "other/BUILD"], path_filters=["some/..."]
        )
        self.assertEqual(len(self.project.main_group.children), 1)
        self.assertIsNotNone(self.generator.file_tree.find("some/path/BUILD"))
        self.assertIsNone(self.generator.file_tree.find("other/BUILD"))


class TestIndexers(GeneratorTestCase):
    def indexer(self, entry: RuleEntry, entries=None, path_filters=("...",)):
        entry_map = rule_entry_map(entries or [entry])
        return self.generator.generate_indexer_target_for_rule_entry(entry, entry_map, path_filters)

    def test_sources(self) -> None:
        entry = RuleEntry(
            "test/lib:TestLib",
            "objc_library",
            source_files=["test/lib/a.m", "other/b.m", "test/lib/a.m"],
        )
        target = self.indexer(entry, path_filters=["test/lib"])
        label = BuildLabel("test/lib:TestLib")
        self.assertEqual(target.name, f"_indexer_TestLib_{label.hash_value}")
        self.assertEqual(target.productType, ProductType.STATIC_LIBRARY)
        self.assertEqual(
            self.settings(target),
            {name: {"PRODUCT_NAME": target.name} for name in STANDARD_CONFIGS},
        )
        (phase,) = self.project.build_phases(target)
        self.assertEqual(self.phase_paths(phase), ["GROUP:test/lib/a.m"])

    def test_nothing_to_index(self) -> None:
        entry = RuleEntry("test/lib:TestLib", "objc_library", source_files=["other/b.m"])
        self.assertIsNone(self.indexer(entry, path_filters=["test/lib"]))
        self.assertEqual(self.project.targets, [])

    def test_prefix_header_alone(self) -> None:
        entry = RuleEntry(
            "test/lib:TestLib", "objc_library", {"pch": {"path": "test/lib/pch.pch", "src": True}}
        )
        target = self.indexer(entry)
        settings = self.settings(target)["Debug"]
        self.assertEqual(settings["GCC_PREFIX_HEADER"], "$(SRCROOT)/test/lib/pch.pch")
        self.assertEqual(target.buildPhases, [])

    def test_bridging_headers(self) -> None:
        source = RuleEntry(
            "test/swift:Lib",
            "swift_library",
            {"bridging_header": {"path": "test/swift/bridge.h", "src": True}},
            source_files=["test/swift/a.swift"],
        )
        generated = RuleEntry(
            "test/swift:GenLib",
            "swift_library",
            {
                "bridging_header": {
                    "path": "test/swift/bridge.h",
                    "src": False,
                    "rootPath": "bazel-out/darwin_x86_64-fastbuild/genfiles",
                }
            },
        )
        source_target = self.indexer(source)
        generated_target = self.indexer(generated)
        self.assertEqual(
            self.settings(source_target)["Debug"]["SWIFT_OBJC_BRIDGING_HEADER"],
            "$(SRCROOT)/test/swift/bridge.h",
        )
        self.assertEqual(
            self.settings(generated_target)["Release"]["SWIFT_OBJC_BRIDGING_HEADER"],
            "bazel-genfiles/test/swift/bridge.h",
        )

    def test_data_models(self) -> None:
        entry = RuleEntry(
            "test/models:Models",
            "objc_library",
            {
                "datamodels": [
                    {"path": "test/models/m.xcdatamodeld/v1.xcdatamodel", "src": True},
                    {"path": "test/models/m.xcdatamodeld/v2.xcdatamodel", "src": True},
                    {"path": "gen/g.xcdatamodeld/v1.xcdatamodel", "src": False},
                ]
            },
        )
        target = self.indexer(entry)
        (phase,) = self.project.build_phases(target)
        self.assertEqual(
            self.phase_paths(phase),
            ["GROUP:test/models/m.xcdatamodeld", "BUILT_PRODUCTS_DIR:gen/g.xcdatamodeld"],
        )
        container = self.generator.file_tree.find("test/models/m.xcdatamodeld")
        self.assertEqual(container.lastKnownFileType, FileType.DATA_MODEL_CONTAINER)

    def test_build_file_reference(self) -> None:
        entry = RuleEntry(
            "test/lib:TestLib",
            "objc_library",
            source_files=["test/lib/a.m"],
            build_file_path="test/lib/BUILD",
        )
        self.indexer(entry, path_filters=["test/lib"])
        self.assertIsNotNone(self.generator.file_tree.find("test/lib/BUILD"))

    def test_build_file_reference_filtered_out(self) -> None:
        entry = RuleEntry(
            "test/lib:TestLib",
            "objc_library",
            source_files=["test/lib/a.m"],
            build_file_path="test/lib/BUILD",
        )
        self.indexer(entry, path_filters=["elsewhere"])
        self.assertIsNone(self.generator.file_tree.find("test/lib/BUILD"))

    def test_dependencies_are_indexed(self) -> None:
        base = RuleEntry("test/base:Base", "objc_library", source_files=["test/base/b.m"])
        empty = RuleEntry("test/empty:Empty", "objc_library")
        lib = RuleEntry(
            "test/lib:Lib",
            "objc_library",
            source_files=["test/lib/a.m"],
            dependencies=["//test/base:Base", "//test/empty:Empty", "//external:Missing"],
        )
        target = self.indexer(lib, entries=[lib, base, empty])
        (dependency,) = self.project.dependency_targets(target)
        self.assertEqual(dependency.name, BazelTargetGenerator.indexer_target_name(base.label))
        self.assertEqual(len(self.project.targets), 2)
        # Already generated indexers are reused
        self.assertIs(self.indexer(base, entries=[lib, base, empty]), dependency)
        self.assertEqual(len(self.project.targets), 2)

    def test_dependency_cycles_terminate(self) -> None:
        first = RuleEntry(
            "test/a:A", "objc_library", source_files=["test/a/a.m"], dependencies=["test/b:B"]
        )
        second = RuleEntry(
            "test/b:B", "objc_library", source_files=["test/b/b.m"], dependencies=["test/a:A"]
        )
        target = self.indexer(first, entries=[first, second])
        self.assertEqual(len(self.project.targets), 2)
        (dependency,) = self.project.dependency_targets(target)
        self.assertEqual(self.project.dependency_targets(dependency), [])

    def test_equivalent_source_spellings(self) -> None:
        entry = RuleEntry(
            "pkg:lib", "objc_library", source_files=["pkg/a.m", "pkg/./a.m", "pkg//a.m"]
        )
        target = self.indexer(entry)
        (phase,) = self.project.build_phases(target)
        self.assertEqual(self.phase_paths(phase), ["GROUP:pkg/a.m"])

    def test_deep_dependency_chain(self) -> None:
        depth = 1600
        entries = [
            RuleEntry(
                f"test/chain:Lib{i}",
                "objc_library",
                source_files=[f"test/chain/lib{i}.m"],
                dependencies=[f"test/chain:Lib{i + 1}"] if i + 1 < depth else [],
            )
            for i in range(depth)
        ]
        target = self.indexer(entries[0], entries=entries)
        self.assertEqual(len(self.project.targets), depth)
        (dependency,) = self.project.dependency_targets(target)
        self.assertEqual(dependency.name, BazelTargetGenerator.indexer_target_name(entries[1].label))
        last = self.project.target_by_name[BazelTargetGenerator.indexer_target_name(entries[-1].label)]
        self.assertEqual(self.project.dependency_targets(last), [])



class TestCleanTarget(GeneratorTestCase):
    def test_added_after_targets(self) -> None:
        app, test = self.generator.generate_build_targets_for_rule_entries(
            [app_entry(), bundle_entry()]
        )
        clean = self.generator.generate_bazel_clean_target("/path/to/clean.sh", "/work")
        self.assertIsInstance(clean, PBXLegacyTarget)
        self.assertEqual(clean.name, "_bazel_clean_")
        self.assertEqual(clean.buildToolPath, "/path/to/clean.sh")
        self.assertEqual(clean.buildArgumentsString, '"/path/to/bazel"')
        self.assertEqual(clean.buildWorkingDirectory, "/work")
        self.assertEqual(set(self.settings(clean)), STANDARD_CONFIGS)
        self.assertEqual(clean.dependencies, [])
        self.assertEqual(self.project.dependency_targets(app), [clean])
        self.assertEqual(self.project.dependency_targets(test), [app, clean])

    def test_added_before_targets(self) -> None:
        clean = self.generator.generate_bazel_clean_target("/path/to/clean.sh")
        (app,) = self.generator.generate_build_targets_for_rule_entries([app_entry()])
        entry = RuleEntry("test/lib:Lib", "objc_library", source_files=["test/lib/a.m"])
        indexer = self.generator.generate_indexer_target_for_rule_entry(
            entry, rule_entry_map([entry]), ["..."]
        )
        self.assertEqual(self.project.dependency_targets(app), [clean])
        self.assertEqual(self.project.dependency_targets(indexer), [clean])
        self.assertEqual(clean.dependencies, [])

    def test_only_one_clean_target(self) -> None:
        self.generator.generate_bazel_clean_target("/path/to/clean.sh")
        with self.assertRaises(NamingCollision):
            self.generator.generate_bazel_clean_target("/path/to/clean.sh")


if __name__ == "__main__":
    unittest.main()
