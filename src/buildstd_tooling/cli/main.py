"""Main CLI entry point for buildstd tooling."""

import sys

from buildstd_tooling.cli import build as build_cli
from buildstd_tooling.cli import clean, plan


def main() -> None:
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print("Usage: buildstd <command> [args...]", file=sys.stderr)
        print("Commands:", file=sys.stderr)
        print("  plan          - Show which std components are built for which targets", file=sys.stderr)
        print("  check         - Type-check the workspace with std built from source", file=sys.stderr)
        print("  build         - Build the workspace with std built from source", file=sys.stderr)
        print("  test          - Build test harnesses with std built from source", file=sys.stderr)
        print("  clean-dylibs  - Remove std dylibs/executables from the build layout", file=sys.stderr)
        sys.exit(1)

    command = sys.argv[1]

    if command == "plan":
        plan.run_plan_argv()
    elif command in build_cli.MODE_DESCRIPTIONS:
        build_cli.run_build_argv(command)
    elif command == "clean-dylibs":
        clean.run_clean_argv()
    else:
        print(f"Error: Unknown command: {command}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
