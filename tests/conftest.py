"""Pytest fixtures for buildstd tooling tests."""

import json
from pathlib import Path
from typing import Any

import pytest

HOST_TRIPLE = "x86_64-unknown-linux-gnu"

# Same content as the built-in x86_64-unknown-none entry.
BARE_X86_64: dict[str, Any] = {
    "llvm-target": "x86_64-unknown-none-elf",
    "data-layout": (
        "e-m:e-p270:32:32-p271:32:32-p272:64:64-i64:64-i128:128-f80:128-n8:16:32:64-S128"
    ),
    "arch": "x86_64",
    "target-pointer-width": 64,
    "os": "none",
    "linker-flavor": "ld.lld",
    "linker": "rust-lld",
    "panic-strategy": "abort",
    "executables": True,
}

RISCV_KERNEL: dict[str, Any] = {
    "llvm-target": "riscv64gc-unknown-none-elf",
    "data-layout": "e-m:e-p:64:64-i64:64-i128:128-n32:64-S128",
    "arch": "riscv64",
    "target-pointer-width": "64",
    "os": "none",
    "linker-flavor": "ld.lld",
    "linker": "rust-lld",
    "panic-strategy": "abort",
    "executables": True,
}


@pytest.fixture
def write_target_spec(tmp_path: Path):
    """Write <name>.json into tmp_path. fields replace/extend the riscv kernel spec."""

    def _write(
        name: str = "my-target",
        fields: dict[str, Any] | None = None,
        base: dict[str, Any] | None = None,
    ) -> Path:
        spec = dict(RISCV_KERNEL if base is None else base)
        spec.update(fields or {})
        p = tmp_path / f"{name}.json"
        p.write_text(json.dumps(spec, indent=2))
        return p

    return _write


@pytest.fixture
def make_config(tmp_path: Path):
    """Build a WorkspaceConfig rooted at tmp_path from a raw config mapping."""
    from buildstd_tooling.config import parse_workspace_config

    def _make(data: dict[str, Any]):
        return parse_workspace_config(data, tmp_path)

    return _make


@pytest.fixture
def resolver():
    from buildstd_tooling.targets import TargetResolver

    return TargetResolver()


@pytest.fixture
def host(resolver):
    return resolver.resolve(HOST_TRIPLE)


@pytest.fixture
def package_set():
    from buildstd_tooling.stdlib import load_std_package_set

    return load_std_package_set()


@pytest.fixture
def make_planner(resolver, host, package_set):
    """SysrootPlanner for a config, with global and forced targets resolved."""
    from buildstd_tooling.sysroot import SysrootPlanner, resolve_forced_targets

    def _make(config):
        global_target = (
            resolver.resolve(config.target, base_dir=config.root) if config.target else None
        )
        forced = resolve_forced_targets(config, resolver)
        return SysrootPlanner(config, package_set, host, global_target, forced)

    return _make
