"""Sysroot planning: which std components to build for which targets.

Every package is assigned an effective target (its forced target, the target of the
package that pulled it in, the global target, or the host). Each distinct target in play
receives the closure of the workspace's build-std request; the host additionally receives
whatever host-side code (proc-macro crates, build scripts) needs to run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from buildstd_tooling.config import WorkspaceConfig
from buildstd_tooling.errors import ConfigError, InconsistentStdRequest
from buildstd_tooling.helpers import short_key
from buildstd_tooling.stdlib.components import (
    StdComponent,
    closure,
    format_components,
    parse_components,
)
from buildstd_tooling.stdlib.package_set import StdPackageSet
from buildstd_tooling.sysroot.plan import PlanEntry, SysrootPlan
from buildstd_tooling.sysroot.reconcile import check_forced_dependency
from buildstd_tooling.targets.descriptor import TargetDescriptor

log = logging.getLogger(__name__)

HOST_REASON = "<host tools>"


@dataclass(frozen=True)
class PackageTarget:
    """One user package compiled for one effective target."""

    package: str
    target: TargetDescriptor
    forced_by: str | None = None
    host: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.package, self.target.key)


def global_std_request(config: WorkspaceConfig) -> frozenset[StdComponent] | None:
    """The workspace build-std request; None when std is not built from source.

    Taken from the workspace `build_std` key, else from the members, which must agree.
    """
    if config.build_std is not None:
        return parse_components(config.build_std)
    requests = {
        m: config.packages[m].build_std
        for m in config.members
        if config.packages[m].build_std is not None
    }
    distinct = {tuple(sorted(v)) for v in requests.values()}
    if not distinct:
        return None
    if len(distinct) > 1:
        detail = ", ".join(f"{m} = {list(v)}" for m, v in sorted(requests.items()))
        msg = f"build-std must be requested uniformly at the workspace root ({detail})"
        raise InconsistentStdRequest(msg)
    return parse_components(distinct.pop())


class SysrootPlanner:
    def __init__(
        self,
        config: WorkspaceConfig,
        package_set: StdPackageSet,
        host: TargetDescriptor,
        global_target: TargetDescriptor | None = None,
        forced: dict[str, TargetDescriptor] | None = None,
    ):
        self.config = config
        self.package_set = package_set
        self.host = host
        self.global_target = global_target
        self.forced = forced or {}
        self._package_targets: list[PackageTarget] | None = None

    @property
    def default_target(self) -> TargetDescriptor:
        return self.global_target if self.global_target is not None else self.host

    def package_targets(self) -> list[PackageTarget]:
        """All (package, target) pairs reachable from the members, dependencies first."""
        if self._package_targets is None:
            self._package_targets = self._walk()
        return self._package_targets

    def _walk(self) -> list[PackageTarget]:
        seen: dict[tuple[str, str], PackageTarget] = {}
        order: list[PackageTarget] = []

        def visit(
            name: str,
            target: TargetDescriptor,
            forced_by: str | None,
            host_side: bool,
            stack: tuple[str, ...],
        ) -> None:
            if name in stack:
                cycle = " -> ".join((*stack[stack.index(name) :], name))
                msg = f"dependency cycle: {cycle}"
                raise ConfigError(msg)
            pt = PackageTarget(name, target, forced_by, host_side)
            if pt.key in seen:
                return
            seen[pt.key] = pt
            for dep in self.config.packages[name].dependencies_for(target.name):
                dep_pkg = self.config.packages[dep]
                if dep_pkg.proc_macro:
                    visit(dep, self.host, None, True, (*stack, name))
                    continue
                dep_forced = self.forced.get(dep)
                check_forced_dependency(name, target, dep, dep_forced)
                if forced_by is None and dep_forced is not None:
                    dep_forced_by = dep
                else:
                    dep_forced_by = forced_by
                visit(dep, target, dep_forced_by, host_side, (*stack, name))
            order.append(pt)

        for m in self.config.members:
            pkg = self.config.packages[m]
            if m in self.forced:
                visit(m, self.forced[m], m, False, ())
            elif pkg.proc_macro:
                visit(m, self.host, None, True, ())
            else:
                visit(m, self.default_target, None, False, ())
        return order

    def _targets_in_play(self) -> dict[str, TargetDescriptor]:
        targets: dict[str, TargetDescriptor] = {}
        if self.global_target is not None:
            targets[self.global_target.key] = self.global_target
        for pt in self.package_targets():
            if not pt.host:
                targets.setdefault(pt.target.key, pt.target)
        return targets

    def _host_needs(self, planned: dict[str, set[StdComponent]]) -> set[StdComponent]:
        needs: set[StdComponent] = set()
        if any(StdComponent.PROC_MACRO in comps for comps in planned.values()):
            needs |= closure({StdComponent.PROC_MACRO})
        pts = self.package_targets()
        if any(pt.host for pt in pts):
            needs |= closure({StdComponent.PROC_MACRO})
        if any(self.config.packages[pt.package].build_script for pt in pts):
            needs |= closure({StdComponent.STD})
        return needs

    def _needs_test(self, target: TargetDescriptor) -> bool:
        if self.config.mode != "test":
            return False
        return any(
            pt.target == target and not pt.host and self.config.packages[pt.package].harness
            for pt in self.package_targets()
            if pt.package in self.config.members
        )

    def plan(self) -> SysrootPlan:
        """Compute the plan. Raises InconsistentStdRequest before anything is scheduled."""
        request = global_std_request(self.config)
        if not request:
            self._check_unplanned()
            log.debug("build-std not requested; using the prebuilt sysroot")
            return SysrootPlan({})

        base = closure(request)
        targets = self._targets_in_play()
        planned: dict[str, set[StdComponent]] = {}
        reasons: dict[str, list[str]] = {}
        for key, target in targets.items():
            comps = set(base)
            if StdComponent.STD in comps and self._needs_test(target):
                comps.add(StdComponent.TEST)
            planned[key] = comps
            reasons[key] = sorted(
                {pt.package for pt in self.package_targets() if pt.target.key == key and not pt.host}
            )

        host_needs = self._host_needs(planned)
        if host_needs:
            planned.setdefault(self.host.key, set()).update(host_needs)
            targets.setdefault(self.host.key, self.host)
            reasons.setdefault(self.host.key, []).append(HOST_REASON)

        names: dict[str, int] = {}
        for t in targets.values():
            names[t.name] = names.get(t.name, 0) + 1

        entries: dict[str, PlanEntry] = {}
        for key, target in targets.items():
            comps = frozenset(planned[key])
            self.package_set.packages_for(comps)
            if self.global_target is None and key == self.host.key:
                layout_dir = None
            elif names[target.name] > 1:
                layout_dir = f"{target.name}-{short_key(key)}"
            else:
                layout_dir = target.name
            entries[key] = PlanEntry(
                target=target,
                components=comps,
                requested_by=tuple(reasons.get(key, ())),
                layout_dir=layout_dir,
            )
            log.debug("planned %s for %s", format_components(comps), target.describe())

        plan = SysrootPlan(entries)
        self._check_requests(plan)
        return plan

    def _check_unplanned(self) -> None:
        for pt in self.package_targets():
            req = self.config.packages[pt.package].build_std
            if req:
                msg = (
                    f"package `{pt.package}` requests build-std {list(req)} for "
                    f"{pt.target.describe()}, but build-std is not enabled at the workspace root"
                )
                raise InconsistentStdRequest(msg, package=pt.package, target=pt.target.name)

    def _check_requests(self, plan: SysrootPlan) -> None:
        for pt in self.package_targets():
            pkg = self.config.packages[pt.package]
            available = plan.components_for(pt.target)
            if pkg.build_std is not None and not pkg.build_std and available:
                msg = (
                    f"package `{pt.package}` requests build-std = [] but is built for "
                    f"{pt.target.describe()}, where std is built from source with "
                    f"{format_components(available)}"
                )
                raise InconsistentStdRequest(msg, package=pt.package, target=pt.target.name)
            if pkg.build_std:
                missing = closure(parse_components(pkg.build_std)) - available
                if missing:
                    msg = (
                        f"package `{pt.package}` needs {format_components(missing)} for "
                        f"{pt.target.describe()}, which the sysroot plan does not build "
                        f"(planned: {format_components(available)})"
                    )
                    raise InconsistentStdRequest(msg, package=pt.package, target=pt.target.name)
