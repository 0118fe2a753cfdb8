"""`buildstd clean-dylibs`: remove std dylibs/executables left in planned deps dirs."""

import sys

from buildstd_tooling.cli.parse_common import add_common_args, load_config_from_args, setup_logging
from buildstd_tooling.errors import BuildStdError
from buildstd_tooling.orchestrator import BuildSession


def clean_dylibs(session: BuildSession) -> int:
    """Returns 0/1."""
    try:
        removed = session.clean_dylibs()
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    root = session.config.root
    for p in removed:
        try:
            shown = p.relative_to(root)
        except ValueError:
            shown = p
        print(f"🗑  Removed {shown}")
    print(f"✅ {len(removed)} file(s) removed")
    return 0


def run_clean_argv(argv: list[str] | None = None) -> None:
    import argparse

    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []  # skip 'buildstd clean-dylibs'
    ap = argparse.ArgumentParser(
        prog="buildstd clean-dylibs",
        description="Delete std dynamic libraries and executables from the build layout",
    )
    add_common_args(ap)
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    try:
        config = load_config_from_args(args)
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(clean_dylibs(BuildSession(config)))
