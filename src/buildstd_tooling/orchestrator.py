"""BuildSession: plan the sysroot, graft it into the unit graph, and run everything.

Planning errors (bad target specs, inconsistent std requests, a missing snapshot, a
touched lock file) are raised from plan() before any unit is scheduled. Compile failures
are collected per unit by run() and only skip the failed unit's dependents.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path

from buildstd_tooling.artifacts import (
    ArtifactRecord,
    filter_output_dir,
    filter_record,
    uplift_record,
)
from buildstd_tooling.config import WorkspaceConfig
from buildstd_tooling.driver import CompiledDep, RustcDriver
from buildstd_tooling.errors import ConfigError
from buildstd_tooling.fingerprint import FingerprintCache, output_fingerprint, unit_fingerprint
from buildstd_tooling.graph.graft import Grafter
from buildstd_tooling.graph.scheduler import DONE, FRESH, ScheduleResult, Scheduler
from buildstd_tooling.graph.units import USER_UNIT, BuildUnit, UnitGraph
from buildstd_tooling.helpers import profile_dir_name
from buildstd_tooling.progress import ProgressReporter
from buildstd_tooling.stdlib.components import StdComponent
from buildstd_tooling.stdlib.isolation import resolve_std_packages
from buildstd_tooling.stdlib.package_set import StdPackageSet
from buildstd_tooling.sysroot.plan import SysrootPlan
from buildstd_tooling.sysroot.planner import SysrootPlanner
from buildstd_tooling.sysroot.reconcile import reconcile_forced_targets, resolve_forced_targets
from buildstd_tooling.targets.descriptor import TargetDescriptor
from buildstd_tooling.targets.host import detect_host_triple, rustc_sysroot, rustc_version
from buildstd_tooling.targets.resolver import TargetResolver, load_builtin_targets

log = logging.getLogger(__name__)

RUST_SRC_SUFFIX = Path("lib") / "rustlib" / "src" / "rust" / "library"


@dataclass
class SessionReport:
    plan: SysrootPlan
    schedule: ScheduleResult
    # (component, target content key) -> unit status; one completion signal per pair.
    std_status: dict[tuple[StdComponent, str], str] = field(default_factory=dict)
    # (package, target content key) -> unit status for library/binary units
    packages: dict[tuple[str, str], str] = field(default_factory=dict)
    tests: dict[tuple[str, str], str] = field(default_factory=dict)
    # Final artifacts copied out of deps/ (target/<layout>/<profile>/<name>).
    uplifted: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.schedule.ok


def unit_label(unit: BuildUnit) -> str:
    suffix = f" {unit.variant}" if unit.variant else ""
    return f"{unit.name}{suffix} ({unit.target.name})"


class BuildSession:
    def __init__(
        self,
        config: WorkspaceConfig,
        driver: RustcDriver | None = None,
        reporter: ProgressReporter | None = None,
        resolver: TargetResolver | None = None,
        host: TargetDescriptor | None = None,
    ):
        self.config = config
        self.driver = driver or RustcDriver(config.rustc, cwd=config.root)
        self.reporter = reporter or ProgressReporter()
        if resolver is None:
            extra = [config.builtin_targets_file] if config.builtin_targets_file else []
            resolver = TargetResolver(load_builtin_targets(*extra))
        self.resolver = resolver
        self.fingerprints = FingerprintCache(config.target_dir, config.root)
        self._host = host
        self._global_target: TargetDescriptor | None = None
        self._package_set: StdPackageSet | None = None
        self._planner: SysrootPlanner | None = None
        self._plan: SysrootPlan | None = None
        self._graph: UnitGraph | None = None

    @property
    def host(self) -> TargetDescriptor:
        if self._host is None:
            self._host = self.resolver.resolve(detect_host_triple(self.config.rustc))
        return self._host

    @property
    def global_target(self) -> TargetDescriptor | None:
        self.plan()
        return self._global_target

    @property
    def package_set(self) -> StdPackageSet:
        if self._package_set is None:
            self.plan()
        return self._package_set

    # --- planning ---

    def plan(self) -> SysrootPlan:
        """Resolve targets and std packages, then compute the sysroot plan (once)."""
        if self._plan is not None:
            return self._plan
        cfg = self.config
        if cfg.target:
            self._global_target = self.resolver.resolve(cfg.target, base_dir=cfg.root)
        forced = resolve_forced_targets(cfg, self.resolver)
        self._package_set = resolve_std_packages(cfg.std_lock, cfg.lockfile, self.reporter)
        self._planner = SysrootPlanner(
            cfg, self._package_set, self.host, self._global_target, forced
        )
        plan = self._planner.plan()
        reconcile_forced_targets(plan, forced, self._global_target)
        for line in plan.summary():
            log.debug("sysroot plan: %s", line)
        self._plan = plan
        return plan

    def library_root(self) -> Path:
        """Root of the std sources: rust_src, else <rustc sysroot>/lib/rustlib/src/rust/library."""
        if self.config.rust_src is not None:
            return self.config.rust_src
        sysroot = rustc_sysroot(self.config.rustc)
        if sysroot is None:
            msg = "cannot locate the std sources; set rust_src or install the rust-src component"
            raise ConfigError(msg)
        return Path(sysroot) / RUST_SRC_SUFFIX

    def graph(self) -> UnitGraph:
        if self._graph is not None:
            return self._graph
        plan = self.plan()
        library_root = self.library_root() if plan else self.config.root
        grafter = Grafter(
            self.config, plan, self.package_set, self.host, self._global_target, library_root
        )
        self._graph = grafter.graft(self._planner.package_targets())
        log.debug("unit graph has %d units", len(self._graph))
        return self._graph

    def out_dir_for(self, unit: BuildUnit) -> Path:
        plan = self.plan()
        target_dir = self.config.target_dir
        if unit.target in plan:
            return plan.deps_dir(unit.target, target_dir, unit.profile.name)
        if self._global_target is None and unit.target == self.host:
            base = target_dir
        else:
            base = target_dir / unit.target.name
        return base / profile_dir_name(unit.profile.name) / "deps"

    def toolchain_id(self) -> str:
        """`rustc -vV` output, so stamps from another compiler are never reused."""
        return rustc_version(self.config.rustc) or self.config.rustc

    def _uplifts(self, unit: BuildUnit) -> bool:
        return (
            unit.kind == USER_UNIT
            and not unit.variant
            and unit.profile.emits_link
            and unit.name in self.config.members
        )

    # --- execution ---

    def run(self) -> SessionReport:
        """Build every unit. Never raises for compile failures; see SessionReport.errors."""
        started = time.monotonic()
        plan = self.plan()
        graph = self.graph()
        fps: dict[int, str] = {}
        records: dict[int, ArtifactRecord] = {}
        uplifted: list[Path] = []
        lock = threading.Lock()
        toolchain = self.toolchain_id()
        snapshot = self.package_set.digest

        def run_unit(unit_id: int) -> tuple[str, ArtifactRecord]:
            unit = graph[unit_id]
            with lock:
                dep_ids = graph.deps(unit_id)
                dep_fps = [fps[d] for d in dep_ids]
                deps = [CompiledDep(graph[d], records[d]) for d in dep_ids]
            fp = unit_fingerprint(unit, dep_fps, toolchain, snapshot)
            record = self.fingerprints.lookup(unit, fp)
            if record is not None:
                status = FRESH
                self.reporter.emit("Fresh", unit_label(unit))
            else:
                self.reporter.emit("Compiling", unit_label(unit))
                record = self.driver.compile(unit, deps, self.out_dir_for(unit))
                if unit.is_std:
                    # Dependents must never see the dylib.
                    record = filter_record(record)
                self.fingerprints.store(unit, fp, record)
                status = DONE
            if self._uplifts(unit):
                pkg = self.config.packages[unit.name]
                copied = uplift_record(
                    record,
                    self.out_dir_for(unit).parent,
                    f"-{unit.metadata_hash}",
                    bin_name=unit.name if pkg.is_bin else None,
                )
            else:
                copied = []
            # Dependents rebuild when any file this unit was compiled from changed.
            out_fp = output_fingerprint(fp, self.fingerprints.source_digests(record))
            with lock:
                fps[unit_id] = out_fp
                records[unit_id] = record
                uplifted.extend(copied)
            if unit.is_std:
                log.debug("std component %s ready for %s", unit.component, unit.target.describe())
            return status, record

        schedule = Scheduler(graph, run_unit, self.config.jobs).run()
        report = SessionReport(plan=plan, schedule=schedule, uplifted=sorted(uplifted))
        for unit_id, outcome in sorted(schedule.outcomes.items()):
            unit = graph[unit_id]
            if unit.is_std:
                report.std_status[(unit.component, unit.target.key)] = outcome.status
            elif unit.kind == USER_UNIT and unit.variant:
                report.tests[(unit.name, unit.target.key)] = outcome.status
            elif unit.kind == USER_UNIT:
                report.packages[(unit.name, unit.target.key)] = outcome.status
            if outcome.error is not None:
                report.errors.append(str(outcome.error))
                self.reporter.emit("error", str(outcome.error))
        report.elapsed = time.monotonic() - started
        if report.ok:
            profile = self.config.profile
            opt = "optimized" if profile == "release" else "unoptimized + debuginfo"
            self.reporter.emit(
                "Finished", f"`{profile}` profile [{opt}] target(s) in {report.elapsed:.2f}s"
            )
        else:
            n = len(schedule.failed())
            self.reporter.emit("error", f"build failed: {n} unit(s) did not compile")
        return report

    def clean_dylibs(self) -> list[Path]:
        """Delete stray std dylibs/executables from every planned target's deps dir."""
        plan = self.plan()
        removed: list[Path] = []
        for entry in plan:
            crates = [p.crate for p in self.package_set.packages_for(entry.components)]
            deps_dir = plan.deps_dir(entry.target, self.config.target_dir, self.config.profile)
            removed += filter_output_dir(deps_dir, crates)
        return removed
