from argparse import Namespace

from bazelproj.details.snapshot import load_snapshot
from bazelproj.generators.xcode import XcodeGenerator


def generate_main(args: Namespace) -> int:
    options, entries = load_snapshot(args.snapshot)
    generator = XcodeGenerator(
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
        check_paths=args.check_paths,
    )
    project_file = generator()
    print(f"Generated {project_file} from {len(entries)} rules")
    return 0
