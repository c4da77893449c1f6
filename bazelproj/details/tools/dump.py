import sys
from argparse import Namespace
from typing import TextIO

from bazelproj.details.snapshot import load_snapshot
from bazelproj.generators.xcode import generate_project
from bazelproj.generators.xcode.formatter import format_xcode_project
from bazelproj.generators.xcode.model import XcodeProject


def write_target_summary(project: XcodeProject, file: TextIO):
    for target in project.targets:
        deps = ", ".join(d.name for d in project.dependency_targets(target))
        configs = ", ".join(project.configurations(target))
        print(f"{target.name} [{configs}] -> {{{deps}}}", file=file)


# Prints the project file (or a per-target summary) without touching the output folder...
def dump_main(args: Namespace) -> int:
    options, entries = load_snapshot(args.snapshot)
    project = generate_project(
        entries,
        options,
        project_name=args.name,
        bazel_path=args.bazel,
        workspace_root=args.workspace_root,
        output_root=args.output_root,
        path_filters=args.filter or ["..."],
        build_script_path=args.build_script,
        env_script_path=args.env_script,
        clean_script_path=args.clean_script,
        clean_working_directory=args.clean_working_directory,
    )
    if args.summary:
        write_target_summary(project, sys.stdout)
    else:
        sys.stdout.write(format_xcode_project(project))
    return 0
