"""Shared CLI arguments (--config, --target, --release, --jobs, -v) and config loading."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

from buildstd_tooling.config import DEFAULT_CONFIG_NAME, WorkspaceConfig, load_workspace_config


def add_common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--config",
        type=path_resolver,
        default=None,
        help=f"Workspace config (default: ./{DEFAULT_CONFIG_NAME})",
    )
    ap.add_argument("--target", default=None, help="Global target: triple or path to a .json spec")
    ap.add_argument("--release", action="store_true", help="Use the release profile")
    ap.add_argument("--jobs", "-j", type=int, default=None, help="Parallel rustc invocations")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")


def path_resolver(s: str) -> Path:
    """Resolve a path argument to absolute Path (e.g. --config)."""
    return Path(s).resolve()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def load_config_from_args(args: argparse.Namespace, mode: str | None = None) -> WorkspaceConfig:
    """Load the config file and apply CLI overrides. Raises ConfigError."""
    config_path = args.config or (Path.cwd() / DEFAULT_CONFIG_NAME)
    config = load_workspace_config(config_path)
    target = args.target
    if target and (target.endswith(".json") or Path(target).is_file()):
        # Custom spec paths on the command line are relative to the cwd.
        target = str(Path(target).resolve())
    changes: dict[str, Any] = {
        "target": target,
        "profile": "release" if args.release else None,
        "jobs": args.jobs,
        "mode": mode,
    }
    return config.with_overrides(**changes)
