"""`buildstd check|build|test`: plan the sysroot and compile the workspace."""

import sys

from buildstd_tooling.cli.parse_common import add_common_args, load_config_from_args, setup_logging
from buildstd_tooling.errors import BuildStdError
from buildstd_tooling.orchestrator import BuildSession

MODE_DESCRIPTIONS = {
    "check": "Type-check the workspace against a std built from source",
    "build": "Build the workspace against a std built from source",
    "test": "Build test harnesses against a std built from source (not run)",
}


def run_session(config) -> int:
    """Run one BuildSession. Returns 0 when every unit compiled, else 1."""
    try:
        report = BuildSession(config).run()
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0 if report.ok else 1


def run_build_argv(mode: str, argv: list[str] | None = None) -> None:
    """Parse argv for check/build/test and exit with the session's return code."""
    import argparse

    if argv is None:
        argv = sys.argv[2:] if len(sys.argv) > 2 else []  # skip 'buildstd <mode>'
    ap = argparse.ArgumentParser(prog=f"buildstd {mode}", description=MODE_DESCRIPTIONS[mode])
    add_common_args(ap)
    args = ap.parse_args(argv)
    setup_logging(args.verbose)
    try:
        config = load_config_from_args(args, mode=mode)
    except BuildStdError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(run_session(config))
