"""Graft planned std units and user units into one UnitGraph.

Every user unit for a target depends on every std unit for that same target, so std is
built (and filtered) before any user code compiles against it. Grafting only mutates the
graph; nothing is written to disk here.
"""

from __future__ import annotations

import logging
from pathlib import Path

from buildstd_tooling.config import PackageConfig, WorkspaceConfig
from buildstd_tooling.errors import PlanningError
from buildstd_tooling.graph.units import (
    BUILD_SCRIPT_UNIT,
    STD_UNIT,
    USER_UNIT,
    BuildUnit,
    CompileProfile,
    UnitGraph,
)
from buildstd_tooling.helpers import to_crate_ident
from buildstd_tooling.stdlib.components import StdComponent
from buildstd_tooling.stdlib.package_set import StdPackage, StdPackageSet
from buildstd_tooling.sysroot.plan import SysrootPlan
from buildstd_tooling.sysroot.planner import PackageTarget
from buildstd_tooling.targets.descriptor import TargetDescriptor

log = logging.getLogger(__name__)


def _emit_flag(profile: CompileProfile) -> str:
    return "--emit=dep-info,metadata,link" if profile.emits_link else "--emit=dep-info,metadata"


def _codegen_flags(target: TargetDescriptor, profile: CompileProfile) -> list[str]:
    return [
        "-C",
        f"opt-level={profile.opt_level}",
        "-C",
        f"debuginfo={profile.debuginfo}",
        "-C",
        f"panic={target.panic_strategy}",
    ]


def std_crate_types(package: StdPackage) -> tuple[str, ...]:
    """Sysroot components are rlibs; dylib only where the snapshot requires it."""
    types = tuple(
        ct for ct in package.crate_types if ct != "dylib" or package.requires_dylib
    )
    return types or ("rlib",)


def std_unit_flags(
    package: StdPackage,
    target: TargetDescriptor,
    profile: CompileProfile,
    rustflags: tuple[str, ...] = (),
) -> tuple[str, ...]:
    flags: list[str] = []
    for ct in std_crate_types(package):
        flags += ["--crate-type", ct]
    flags += ["--target", target.rustc_target_arg, _emit_flag(profile)]
    flags += _codegen_flags(target, profile)
    flags += ["-Z", "force-unstable-if-unmarked", "-C", "embed-bitcode=yes"]
    for feature in package.features:
        if feature == "panic-unwind" and target.panic_strategy == "abort":
            continue
        flags += ["--cfg", f'feature="{feature}"']
    if package.component is StdComponent.CORE and target.is_no_std_os:
        # No libc to provide memcpy and friends.
        flags += ["--cfg", 'feature="compiler-builtins-mem"']
    flags += list(rustflags)
    return tuple(flags)


class Grafter:
    def __init__(
        self,
        config: WorkspaceConfig,
        plan: SysrootPlan,
        package_set: StdPackageSet,
        host: TargetDescriptor,
        global_target: TargetDescriptor | None,
        library_root: Path,
        graph: UnitGraph | None = None,
    ):
        self.config = config
        self.plan = plan
        self.package_set = package_set
        self.host = host
        self.global_target = global_target
        self.library_root = library_root
        self.profile = CompileProfile.from_config(config)
        # Everything except test harness units builds in plain build (or check) mode.
        self.base_profile = CompileProfile(
            self.profile.name, "check" if self.profile.mode == "check" else "build"
        )
        self.graph = graph if graph is not None else UnitGraph()
        self.host_tools: frozenset[str] = frozenset()
        self.std_ids: dict[tuple[StdComponent, str], int] = {}
        self.user_ids: dict[tuple[str, str], int] = {}
        self.build_script_ids: dict[str, int] = {}

    # --- host tools ---

    def find_host_tools(self, package_targets: list[PackageTarget]) -> frozenset[str]:
        """Packages that must be linked for the host: proc-macros and everything they use."""
        stack = [
            pt.package
            for pt in package_targets
            if pt.target == self.host and self.config.packages[pt.package].proc_macro
        ]
        found: set[str] = set()
        while stack:
            name = stack.pop()
            if name in found:
                continue
            found.add(name)
            stack.extend(self.config.packages[name].dependencies_for(self.host.name))
        return frozenset(found)

    def _needs_host_link(self, package_targets: list[PackageTarget]) -> bool:
        return bool(self.host_tools) or any(
            self.config.packages[pt.package].build_script for pt in package_targets
        )

    def _link_profile(self) -> CompileProfile:
        return CompileProfile(self.profile.name, "build")

    # --- std ---

    def graft_std(self, host_link: bool = False) -> dict[tuple[StdComponent, str], int]:
        """One unit per (component, target) in the plan, edges per the component table.

        With host_link, host std is fully built even in check mode, since proc-macros and
        build scripts link against it.
        """
        for entry in self.plan:
            target = entry.target
            if host_link and target == self.host:
                std_profile = self._link_profile()
            else:
                std_profile = self.base_profile
            for package in self.package_set.packages_for(entry.components):
                unit = BuildUnit(
                    kind=STD_UNIT,
                    name=package.crate,
                    crate_name=to_crate_ident(package.crate),
                    target=target,
                    profile=std_profile,
                    crate_types=std_crate_types(package),
                    flags=std_unit_flags(package, target, std_profile, self.config.rustflags),
                    source=package.source_path(self.library_root),
                    edition=self.package_set.edition,
                    component=package.component,
                    host=target == self.host,
                )
                unit_id = self.graph.add(unit)
                self.std_ids[(package.component, target.key)] = unit_id
                for dep in package.dependencies:
                    self.graph.add_edge(unit_id, self.std_ids[(dep, target.key)])
            log.debug("grafted %d std units for %s", len(entry.components), target.describe())
        return self.std_ids

    def std_units_for(self, target: TargetDescriptor) -> list[int]:
        return sorted(i for (_, key), i in self.std_ids.items() if key == target.key)

    # --- user ---

    def _explicit_target(self, target: TargetDescriptor) -> bool:
        return not (self.global_target is None and target == self.host)

    def _user_flags(
        self,
        pkg: PackageConfig,
        pt: PackageTarget,
        crate_types: tuple[str, ...],
        profile: CompileProfile,
        test: bool,
    ) -> tuple[str, ...]:
        flags: list[str] = []
        if test and pkg.harness:
            flags.append("--test")
        elif test:
            flags += ["--crate-type", "bin", "--cfg", "test"]
        else:
            for ct in crate_types:
                flags += ["--crate-type", ct]
        if self._explicit_target(pt.target):
            flags += ["--target", pt.target.rustc_target_arg]
        flags.append(_emit_flag(profile))
        flags += _codegen_flags(pt.target, profile)
        if pt.target in self.plan:
            flags += ["-Z", "unstable-options"]
        flags += list(self.config.rustflags)
        return tuple(flags)

    def _graft_build_script(self, pkg: PackageConfig) -> int:
        existing = self.build_script_ids.get(pkg.name)
        if existing is not None:
            return existing
        host_pt = PackageTarget(pkg.name, self.host, None, True)
        profile = self._link_profile()
        unit = BuildUnit(
            kind=BUILD_SCRIPT_UNIT,
            name=pkg.name,
            crate_name=f"build_script_{to_crate_ident(pkg.name)}",
            target=self.host,
            profile=profile,
            crate_types=("bin",),
            flags=self._user_flags(pkg, host_pt, ("bin",), profile, test=False),
            source=pkg.path / "build.rs",
            edition=pkg.edition,
            host=True,
        )
        unit_id = self.graph.add(unit)
        for std_id in self.std_units_for(self.host):
            self.graph.add_edge(unit_id, std_id)
        self.build_script_ids[pkg.name] = unit_id
        return unit_id

    def _add_user_unit(self, pt: PackageTarget, test: bool) -> int:
        pkg = self.config.packages[pt.package]
        crate_types = ("proc-macro",) if pkg.proc_macro else pkg.crate_types
        if test:
            profile = self.profile
        elif pt.target == self.host and pkg.name in self.host_tools:
            profile = self._link_profile()
        else:
            profile = self.base_profile
        unit = BuildUnit(
            kind=USER_UNIT,
            name=pkg.name,
            crate_name=to_crate_ident(pkg.name),
            target=pt.target,
            profile=profile,
            crate_types=("bin",) if test else crate_types,
            flags=self._user_flags(pkg, pt, crate_types, profile, test),
            source=pkg.src,
            edition=pkg.edition,
            host=pt.host,
            variant="test" if test else "",
        )
        unit_id = self.graph.add(unit)
        for std_id in self.std_units_for(pt.target):
            self.graph.add_edge(unit_id, std_id)
        for dep in pkg.dependencies_for(pt.target.name):
            dep_pkg = self.config.packages[dep]
            dep_target = self.host if dep_pkg.proc_macro else pt.target
            dep_id = self.user_ids.get((dep, dep_target.key))
            if dep_id is None:
                msg = (
                    f"`{pkg.name}` depends on `{dep}` for {dep_target.describe()}, "
                    "which was not planned"
                )
                raise PlanningError(msg)
            self.graph.add_edge(unit_id, dep_id)
        if pkg.build_script:
            self.graph.add_edge(unit_id, self._graft_build_script(pkg))
        return unit_id

    def graft_user(self, package_targets: list[PackageTarget]) -> dict[tuple[str, str], int]:
        """package_targets must be ordered dependencies first (SysrootPlanner does this)."""
        for pt in package_targets:
            self.user_ids[pt.key] = self._add_user_unit(pt, test=False)
        if self.profile.mode == "test":
            for pt in package_targets:
                if pt.package in self.config.members and not pt.host:
                    self._add_user_unit(pt, test=True)
        return self.user_ids

    def graft(self, package_targets: list[PackageTarget]) -> UnitGraph:
        self.host_tools = self.find_host_tools(package_targets)
        self.graft_std(host_link=self._needs_host_link(package_targets))
        self.graft_user(package_targets)
        verify_target_isolation(self.graph)
        return self.graph


def verify_target_isolation(graph: UnitGraph) -> None:
    """Each unit's std dependencies are built for that unit's own target."""
    for i in graph:
        unit = graph[i]
        for d in graph.deps(i):
            dep = graph[d]
            if dep.is_std and dep.target != unit.target:
                msg = (
                    f"{unit.describe()} depends on std unit {dep.describe()} "
                    f"built for a different target"
                )
                raise PlanningError(msg)
