"""`buildstd plan`: print the sysroot plan without compiling anything."""

import sys

from buildstd_tooling.cli.parse_common import add_common_args, load_config_from_args, setup_logging
from buildstd_tooling.errors import BuildStdError
from buildstd_tooling.orchestrator import BuildSession


def print_plan(session: BuildSession) -> int:
    """Print one line per planned target. Returns 0/1."""
    try:
        plan = session.plan()
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    if not plan:
        print("build-std not requested: every target uses the prebuilt sysroot")
        return 0
    target_dir = session.config.target_dir
    for entry in plan:
        layout = plan.layout_root(entry.target, target_dir, session.config.profile)
        requested = ", ".join(entry.requested_by) or "-"
        print(f"{entry.describe()}")
        print(f"    key:       {entry.target.key}")
        print(f"    layout:    {layout}")
        print(f"    requested: {requested}")
    return 0


def run_plan_argv(argv: list[str] | None = None) -> None:
    import argparse

    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []  # skip 'buildstd plan'
    ap = argparse.ArgumentParser(prog="buildstd plan", description="Show the sysroot plan")
    add_common_args(ap)
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    try:
        config = load_config_from_args(args)
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(print_plan(BuildSession(config)))
