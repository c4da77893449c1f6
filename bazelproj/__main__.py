from argparse import ArgumentParser
import logging
import sys

from bazelproj.details.tools.dump import dump_main
from bazelproj.details.tools.generate import generate_main
from bazelproj.errors import GenerationError


def make_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="bazelproj")
    parser.add_argument("command", choices=COMMANDS.keys())
    parser.add_argument("snapshot", type=str, help="JSON snapshot of the build graph")
    parser.add_argument("--name", type=str, required=True, help="project name")
    parser.add_argument("--bazel", type=str, default="bazel")
    parser.add_argument("--workspace-root", type=str, default=".")
    parser.add_argument("--output-root", type=str, default=".")
    parser.add_argument("--filter", type=str, action="append", default=[])
    parser.add_argument("--build-script", type=str, default="")
    parser.add_argument("--env-script", type=str, default="")
    parser.add_argument("--clean-script", type=str, default=None)
    parser.add_argument("--clean-working-directory", type=str, default="")
    parser.add_argument("--check-paths", action="store_true")
    parser.add_argument("--summary", action="store_true", help="print: list targets only")
    parser.add_argument("--verbose", action="store_true")
    return parser


COMMANDS = {
    "generate": generate_main,
    "print": dump_main,
}


def main(argv=None):
    args = make_parser().parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        exit_code = COMMANDS[args.command](args)
    except (GenerationError, OSError) as e:
        print(f"bazelproj: error: {e}", file=sys.stderr)
        exit_code = 1
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
