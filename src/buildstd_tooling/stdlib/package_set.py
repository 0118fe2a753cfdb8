"""Synthetic std package set, loaded from the bundled pinned snapshot.

The snapshot replaces dependency resolution for the std family: it is read from disk,
checked against the static component table, and never updated, locked, or fetched.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from buildstd_tooling.errors import InconsistentStdRequest, MissingStdManifest
from buildstd_tooling.stdlib.components import StdComponent, topological_order

log = logging.getLogger(__name__)

DEFAULT_STD_LOCK_PATH = Path(__file__).parent / "data" / "std-lock.yaml"
SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class StdPackage:
    component: StdComponent
    crate: str
    path: str
    crate_types: tuple[str, ...]
    features: tuple[str, ...]
    dependencies: frozenset[StdComponent]
    requires_dylib: bool = False

    def source_path(self, library_root: Path) -> Path:
        return library_root / self.path


@dataclass(frozen=True)
class StdPackageSet:
    path: Path
    digest: str
    edition: str
    packages: dict[StdComponent, StdPackage]

    def __getitem__(self, component: StdComponent) -> StdPackage:
        return self.packages[component]

    def packages_for(self, components: Iterable[StdComponent]) -> list[StdPackage]:
        """Pinned packages for the given components, leaf first."""
        wanted = set(components)
        missing = wanted - set(self.packages)
        if missing:
            names = ", ".join(sorted(c.value for c in missing))
            msg = f"std package snapshot {self.path} has no entry for: {names}"
            raise InconsistentStdRequest(msg)
        return [self.packages[c] for c in topological_order(wanted)]


def _str_list(entry: dict[str, Any], key: str, path: Path, name: str) -> tuple[str, ...]:
    value = entry.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MissingStdManifest(path, f"package `{name}`: `{key}` must be a list of strings")
    return tuple(value)


def _parse_package(name: str, entry: Any, path: Path) -> StdPackage:
    try:
        component = StdComponent(name)
    except ValueError:
        raise MissingStdManifest(path, f"unknown std package `{name}`") from None
    if not isinstance(entry, dict):
        raise MissingStdManifest(path, f"package `{name}` must be a mapping")
    src = entry.get("path")
    if not isinstance(src, str) or not src:
        raise MissingStdManifest(path, f"package `{name}` has no source path")
    deps_raw = _str_list(entry, "dependencies", path, name)
    try:
        deps = frozenset(StdComponent(d) for d in deps_raw)
    except ValueError as e:
        raise MissingStdManifest(path, f"package `{name}`: {e}") from e
    if deps != component.deps:
        want = sorted(c.value for c in component.deps)
        raise MissingStdManifest(
            path, f"package `{name}` dependencies {sorted(deps_raw)} do not match {want}"
        )
    return StdPackage(
        component=component,
        crate=str(entry.get("crate") or name),
        path=src,
        crate_types=_str_list(entry, "crate_types", path, name) or ("rlib",),
        features=_str_list(entry, "features", path, name),
        dependencies=deps,
        requires_dylib=bool(entry.get("requires_dylib", False)),
    )


def load_std_package_set(path: Path | None = None) -> StdPackageSet:
    """Load and validate the pinned snapshot. Raises MissingStdManifest; never falls back."""
    p = path or DEFAULT_STD_LOCK_PATH
    try:
        raw = p.read_bytes()
    except FileNotFoundError:
        raise MissingStdManifest(p, "file not found") from None
    except OSError as e:
        raise MissingStdManifest(p, f"unreadable: {e}") from e
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise MissingStdManifest(p, f"invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise MissingStdManifest(p, "expected a mapping at top level")
    if data.get("version") != SNAPSHOT_VERSION:
        raise MissingStdManifest(p, f"unsupported snapshot version {data.get('version')!r}")
    entries = data.get("packages")
    if not isinstance(entries, dict):
        raise MissingStdManifest(p, "missing `packages` mapping")

    packages = {}
    for name, entry in entries.items():
        pkg = _parse_package(str(name), entry, p)
        packages[pkg.component] = pkg
    absent = [c.value for c in StdComponent if c not in packages]
    if absent:
        raise MissingStdManifest(p, f"missing std packages: {', '.join(absent)}")

    digest = hashlib.sha256(raw).hexdigest()
    log.debug("loaded std package snapshot %s (%s)", p, digest[:12])
    return StdPackageSet(
        path=p, digest=digest, edition=str(data.get("edition", "2021")), packages=packages
    )
