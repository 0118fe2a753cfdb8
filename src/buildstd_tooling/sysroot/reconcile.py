"""Forced-target reconciliation: per-package target overrides folded into the plan.

A package with `forced_target` builds (with its dependency subtree) for that target no
matter what the global target is, and gets its own std build for it. Forced targets are
gated behind the `per-package-target` capability.
"""

from __future__ import annotations

import logging

from buildstd_tooling.config import WorkspaceConfig
from buildstd_tooling.errors import ForcedTargetConflict, PlanningError
from buildstd_tooling.sysroot.plan import SysrootPlan
from buildstd_tooling.targets.descriptor import TargetDescriptor
from buildstd_tooling.targets.resolver import TargetResolver

log = logging.getLogger(__name__)

PER_PACKAGE_TARGET = "per-package-target"


def resolve_forced_targets(
    config: WorkspaceConfig, resolver: TargetResolver
) -> dict[str, TargetDescriptor]:
    """Resolve every declared forced target (relative to its package directory)."""
    forced: dict[str, TargetDescriptor] = {}
    for name, pkg in config.packages.items():
        if not pkg.forced_target:
            continue
        if PER_PACKAGE_TARGET not in config.features:
            msg = (
                f"package `{name}` sets forced_target = {pkg.forced_target!r} but the "
                f"`{PER_PACKAGE_TARGET}` feature is not enabled"
            )
            raise ForcedTargetConflict(msg, package=name, target=pkg.forced_target)
        forced[name] = resolver.resolve(pkg.forced_target, base_dir=pkg.path)
        log.debug("package %s forced to %s", name, forced[name].describe())
    return forced


def check_forced_dependency(
    parent: str,
    parent_target: TargetDescriptor,
    dep: str,
    dep_forced: TargetDescriptor | None,
) -> None:
    """A dependency forced to other target content cannot be linked into parent."""
    if dep_forced is None or dep_forced == parent_target:
        return
    msg = (
        f"package `{dep}` forces target {dep_forced.describe()} but is a dependency of "
        f"`{parent}`, which builds for {parent_target.describe()}"
    )
    raise ForcedTargetConflict(msg, package=dep, target=dep_forced.describe(), other=parent)


def reconcile_forced_targets(
    plan: SysrootPlan,
    forced: dict[str, TargetDescriptor],
    global_target: TargetDescriptor | None,
) -> None:
    """Every forced target has its own plan entry; identical content shares one entry."""
    if not plan:
        return
    for name, target in sorted(forced.items()):
        entry = plan.entry(target)
        if entry is None:
            msg = f"forced target {target.describe()} of package `{name}` has no sysroot plan entry"
            raise PlanningError(msg)
        if global_target is not None and target == global_target:
            log.debug(
                "forced target of %s matches the global target %s; sharing its std build",
                name,
                global_target.name,
            )
