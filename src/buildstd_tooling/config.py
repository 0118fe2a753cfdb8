"""Workspace config loading (buildstd.yaml).

Config YAML format:
- target: global target (built-in triple or path to a .json spec), optional
- build_std: std components to build from source, optional (see sysroot.planner)
- features: opt-in capabilities, e.g. [per-package-target]
- profile: dev | release; mode: check | build | test
- target_dir, rust_src, std_lock, builtin_targets_file, lockfile: paths
- jobs, rustc, rustflags
- members: workspace members (default: packages no other package depends on)
- packages: map name -> { path, src, build_std, forced_target, dependencies,
  target_dependencies, crate_types, build_script, proc_macro, harness, edition }

Relative paths resolve against the config file's directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from buildstd_tooling.errors import ConfigError
from buildstd_tooling.helpers import is_crate_name, resolve_relative

DEFAULT_CONFIG_NAME = "buildstd.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "target": None,
    "build_std": None,
    "features": [],
    "profile": "dev",
    "mode": "build",
    "target_dir": "target",
    "rust_src": None,
    "std_lock": None,
    "builtin_targets_file": None,
    "lockfile": "Cargo.lock",
    "jobs": None,
    "rustc": "rustc",
    "rustflags": [],
    "members": None,
    "packages": {},
}

PROFILES = ("dev", "release")
MODES = ("check", "build", "test")
CRATE_TYPES = ("lib", "rlib", "bin", "proc-macro", "staticlib", "cdylib", "dylib")


@dataclass(frozen=True)
class PackageConfig:
    name: str
    path: Path
    src: Path
    build_std: tuple[str, ...] | None = None
    forced_target: str | None = None
    dependencies: tuple[str, ...] = ()
    target_dependencies: dict[str, tuple[str, ...]] = field(default_factory=dict)
    crate_types: tuple[str, ...] = ("lib",)
    build_script: bool = False
    proc_macro: bool = False
    harness: bool = True
    edition: str = "2021"

    @property
    def is_bin(self) -> bool:
        return "bin" in self.crate_types

    def dependencies_for(self, target_name: str) -> tuple[str, ...]:
        """Plain dependencies plus those declared for target_name."""
        return self.dependencies + self.target_dependencies.get(target_name, ())


@dataclass(frozen=True)
class WorkspaceConfig:
    root: Path
    packages: dict[str, PackageConfig]
    members: tuple[str, ...]
    target: str | None = None
    build_std: tuple[str, ...] | None = None
    features: frozenset[str] = frozenset()
    profile: str = "dev"
    mode: str = "build"
    target_dir: Path = Path("target")
    rust_src: Path | None = None
    std_lock: Path | None = None
    builtin_targets_file: Path | None = None
    lockfile: Path | None = None
    jobs: int | None = None
    rustc: str = "rustc"
    rustflags: tuple[str, ...] = ()

    def with_overrides(self, **changes: Any) -> WorkspaceConfig:
        """Copy with CLI overrides applied (None values are ignored)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _str_tuple(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"{where}: expected a list of strings"
        raise ConfigError(msg)
    return tuple(value)


def _optional_path(base: Path, value: Any) -> Path | None:
    if value in (None, ""):
        return None
    return resolve_relative(base, str(value))


def _load_package(name: str, data: Any, base: Path) -> PackageConfig:
    if not is_crate_name(name):
        msg = f"invalid package name `{name}`"
        raise ConfigError(msg)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"packages.{name}: expected a mapping"
        raise ConfigError(msg)
    path = resolve_relative(base, data.get("path", "."))
    crate_types = _str_tuple(data.get("crate_types"), f"packages.{name}.crate_types") or ("lib",)
    for ct in crate_types:
        if ct not in CRATE_TYPES:
            msg = f"packages.{name}.crate_types: unknown crate type `{ct}`"
            raise ConfigError(msg)
    proc_macro = bool(data.get("proc_macro", False)) or "proc-macro" in crate_types
    default_src = "src/main.rs" if "bin" in crate_types else "src/lib.rs"
    build_std = data.get("build_std")
    tdeps_raw = data.get("target_dependencies") or {}
    if not isinstance(tdeps_raw, dict):
        msg = f"packages.{name}.target_dependencies: expected a mapping"
        raise ConfigError(msg)
    return PackageConfig(
        name=name,
        path=path,
        src=resolve_relative(path, data.get("src", default_src)),
        build_std=None
        if build_std is None
        else _str_tuple(build_std, f"packages.{name}.build_std"),
        forced_target=data.get("forced_target"),
        dependencies=_str_tuple(data.get("dependencies"), f"packages.{name}.dependencies"),
        target_dependencies={
            str(t): _str_tuple(deps, f"packages.{name}.target_dependencies.{t}")
            for t, deps in tdeps_raw.items()
        },
        crate_types=crate_types,
        build_script=bool(data.get("build_script", False)),
        proc_macro=proc_macro,
        harness=bool(data.get("harness", True)),
        edition=str(data.get("edition", "2021")),
    )


def parse_workspace_config(data: dict[str, Any] | None, base_dir: Path) -> WorkspaceConfig:
    """Normalize a raw config mapping. Raises ConfigError."""
    raw = dict(DEFAULT_CONFIG)
    unknown = set(data or {}) - set(DEFAULT_CONFIG)
    if unknown:
        msg = f"unknown config keys: {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    raw.update(data or {})
    base = base_dir.resolve()

    if raw["profile"] not in PROFILES:
        msg = f"profile must be one of {', '.join(PROFILES)}, got {raw['profile']!r}"
        raise ConfigError(msg)
    if raw["mode"] not in MODES:
        msg = f"mode must be one of {', '.join(MODES)}, got {raw['mode']!r}"
        raise ConfigError(msg)
    if not isinstance(raw["packages"], dict):
        msg = "packages: expected a mapping"
        raise ConfigError(msg)

    packages = {
        str(name): _load_package(str(name), pkg, base) for name, pkg in raw["packages"].items()
    }
    for pkg in packages.values():
        all_deps = set(pkg.dependencies)
        for deps in pkg.target_dependencies.values():
            all_deps.update(deps)
        for dep in sorted(all_deps):
            if dep not in packages:
                msg = f"package `{pkg.name}` depends on unknown package `{dep}`"
                raise ConfigError(msg)

    if raw["members"] is not None:
        members = _str_tuple(raw["members"], "members")
    else:
        depended_on: set[str] = set()
        for pkg in packages.values():
            depended_on.update(pkg.dependencies)
            for deps in pkg.target_dependencies.values():
                depended_on.update(deps)
        members = tuple(n for n in packages if n not in depended_on)
    for m in members:
        if m not in packages:
            msg = f"member `{m}` is not a declared package"
            raise ConfigError(msg)

    jobs = raw["jobs"]
    if jobs is not None and (not isinstance(jobs, int) or isinstance(jobs, bool) or jobs < 1):
        msg = f"jobs must be a positive integer, got {jobs!r}"
        raise ConfigError(msg)

    build_std = raw["build_std"]
    return WorkspaceConfig(
        root=base,
        packages=packages,
        members=members,
        target=raw["target"],
        build_std=None if build_std is None else _str_tuple(build_std, "build_std"),
        features=frozenset(_str_tuple(raw["features"], "features")),
        profile=raw["profile"],
        mode=raw["mode"],
        target_dir=resolve_relative(base, raw["target_dir"]),
        rust_src=_optional_path(base, raw["rust_src"]),
        std_lock=_optional_path(base, raw["std_lock"]),
        builtin_targets_file=_optional_path(base, raw["builtin_targets_file"]),
        lockfile=_optional_path(base, raw["lockfile"]),
        jobs=jobs,
        rustc=str(raw["rustc"]),
        rustflags=_str_tuple(raw["rustflags"], "rustflags"),
    )


def apply_env_overrides(config: WorkspaceConfig) -> WorkspaceConfig:
    """BUILDSTD_TARGET_DIR, BUILDSTD_JOBS and RUSTC override the file."""
    changes: dict[str, Any] = {}
    target_dir = os.environ.get("BUILDSTD_TARGET_DIR")
    if target_dir:
        changes["target_dir"] = resolve_relative(config.root, target_dir)
    jobs = os.environ.get("BUILDSTD_JOBS")
    if jobs:
        try:
            changes["jobs"] = max(1, int(jobs))
        except ValueError as e:
            msg = f"BUILDSTD_JOBS must be an integer, got {jobs!r}"
            raise ConfigError(msg) from e
    rustc = os.environ.get("RUSTC")
    if rustc:
        changes["rustc"] = rustc
    return config.with_overrides(**changes)


def load_workspace_config(config_path: Path) -> WorkspaceConfig:
    """Load buildstd.yaml and apply environment overrides. Raises ConfigError."""
    try:
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        msg = f"{config_path} not found"
        raise ConfigError(msg) from e
    except (OSError, yaml.YAMLError) as e:
        msg = f"cannot read {config_path}: {e}"
        raise ConfigError(msg) from e
    if not isinstance(data, dict):
        msg = f"{config_path}: expected a mapping at top level"
        raise ConfigError(msg)
    return apply_env_overrides(parse_workspace_config(data, config_path.parent))
