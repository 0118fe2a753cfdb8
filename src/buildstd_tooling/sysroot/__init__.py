"""Sysroot planning and forced-target reconciliation."""

from .plan import PlanEntry, SysrootPlan
from .planner import PackageTarget, SysrootPlanner, global_std_request
from .reconcile import (
    PER_PACKAGE_TARGET,
    check_forced_dependency,
    reconcile_forced_targets,
    resolve_forced_targets,
)

__all__ = [
    "PER_PACKAGE_TARGET",
    "PackageTarget",
    "PlanEntry",
    "SysrootPlan",
    "SysrootPlanner",
    "check_forced_dependency",
    "global_std_request",
    "reconcile_forced_targets",
    "resolve_forced_targets",
]
