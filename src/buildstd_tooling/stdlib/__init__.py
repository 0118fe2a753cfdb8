"""Std component table, pinned std package snapshot, and lock file isolation."""

from .components import (
    COMPONENT_DEPS,
    StdComponent,
    closure,
    format_components,
    parse_components,
    topological_order,
)
from .isolation import LockfileIsolationGuard, resolve_std_packages
from .package_set import (
    DEFAULT_STD_LOCK_PATH,
    StdPackage,
    StdPackageSet,
    load_std_package_set,
)

__all__ = [
    "COMPONENT_DEPS",
    "DEFAULT_STD_LOCK_PATH",
    "LockfileIsolationGuard",
    "StdComponent",
    "StdPackage",
    "StdPackageSet",
    "closure",
    "format_components",
    "load_std_package_set",
    "parse_components",
    "resolve_std_packages",
    "topological_order",
]
