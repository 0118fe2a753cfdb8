"""Tests for buildstd_tooling.orchestrator (BuildSession with a fake compiler)."""

import threading
from pathlib import Path

import pytest

from conftest import BARE_X86_64


class FakeDriver:
    """Writes what rustc would for the unit's --emit and crate types, plus dep-info.

    The argv is still assembled by RustcDriver.command, so missing extern files fail the
    unit the same way they would with a real compiler. Std units also get a dylib the
    filter must remove.
    """

    def __init__(self, fail: tuple[str, ...] = ()):
        self.fail = set(fail)
        self.compiled: list[str] = []
        self.commands: dict[tuple[str, str, str], list[str]] = {}
        self._lock = threading.Lock()

    def compile(self, unit, deps, out_dir: Path):
        from buildstd_tooling.artifacts import ArtifactRecord
        from buildstd_tooling.driver import RustcDriver
        from buildstd_tooling.errors import UnitFailed

        cmd = RustcDriver().command(unit, deps, out_dir)
        with self._lock:
            self.compiled.append(f"{unit.name}@{unit.target.name}")
            self.commands[(unit.kind, unit.name, unit.target.name)] = cmd
        if unit.name in self.fail:
            raise UnitFailed(unit.name, unit.target.name, "error[E0425]: cannot find value")
        out_dir.mkdir(parents=True, exist_ok=True)
        link = unit.profile.emits_link
        stem = f"{unit.crate_name}-{unit.metadata_hash}"
        names = [f"lib{stem}.rmeta", f"{stem}.d"]
        if link and "proc-macro" in unit.crate_types:
            names.append(f"lib{stem}.so")
        elif link and "bin" in unit.crate_types:
            names.append(stem)
        elif link:
            names.append(f"lib{stem}.rlib")
        if link and unit.is_std:
            names.append(f"lib{stem}.so")
        src_dir = unit.source.parent
        siblings = sorted(src_dir.glob("*.rs")) if src_dir.is_dir() else []
        sources = [unit.source, *siblings]
        dep_line = " ".join(dict.fromkeys(str(s) for s in sources))
        files = []
        for n in names:
            p = out_dir / n
            p.write_text(f"{out_dir / stem}: {dep_line}\n" if n.endswith(".d") else "")
            files.append(p)
        return ArtifactRecord(unit.name, unit.target.key, tuple(files))


def _session(config, host, driver=None, reporter=None):
    from buildstd_tooling.orchestrator import BuildSession
    from buildstd_tooling.progress import ProgressReporter

    return BuildSession(
        config,
        driver=driver or FakeDriver(),
        reporter=reporter or ProgressReporter(quiet=True),
        host=host,
    )


@pytest.fixture
def workspace(tmp_path: Path):
    """Source tree with app -> util, a proc-macro crate and a Cargo.lock."""
    for name in ("app", "util", "fw", "mac"):
        src = tmp_path / name / "src"
        src.mkdir(parents=True)
        (src / "lib.rs").write_text(f"// {name}\n")
    (tmp_path / "Cargo.lock").write_text("version = 3\n")
    (tmp_path / "rust-src").mkdir()
    return tmp_path


def _base_config(**extra):
    data = {
        "build_std": ["std"],
        "rust_src": "rust-src",
        "packages": {
            "app": {"path": "app", "dependencies": ["util"]},
            "util": {"path": "util"},
        },
    }
    data.update(extra)
    return data


class TestBuildSessionPlan:
    def test_plan_is_computed_once(self, make_config, host, workspace) -> None:
        session = _session(make_config(_base_config()), host)
        assert session.plan() is session.plan()

    def test_planning_error_aborts_before_compiling(self, make_config, host, workspace) -> None:
        from buildstd_tooling.errors import InconsistentStdRequest

        data = _base_config()
        data["packages"]["util"]["build_std"] = []
        driver = FakeDriver()
        session = _session(make_config(data), host, driver=driver)
        with pytest.raises(InconsistentStdRequest):
            session.run()
        assert driver.compiled == []

    def test_missing_snapshot_aborts(self, make_config, host, workspace) -> None:
        from buildstd_tooling.errors import MissingStdManifest

        session = _session(make_config(_base_config(std_lock="missing.yaml")), host)
        with pytest.raises(MissingStdManifest):
            session.plan()

    def test_library_root_from_rustc_sysroot(self, make_config, host, workspace, monkeypatch) -> None:
        from buildstd_tooling import orchestrator

        data = _base_config()
        del data["rust_src"]
        session = _session(make_config(data), host)
        monkeypatch.setattr(orchestrator, "rustc_sysroot", lambda rustc: "/opt/rust")
        assert session.library_root() == Path("/opt/rust/lib/rustlib/src/rust/library")

    def test_library_root_unavailable(self, make_config, host, workspace, monkeypatch) -> None:
        from buildstd_tooling import orchestrator
        from buildstd_tooling.errors import ConfigError

        data = _base_config()
        del data["rust_src"]
        session = _session(make_config(data), host)
        monkeypatch.setattr(orchestrator, "rustc_sysroot", lambda rustc: None)
        with pytest.raises(ConfigError, match="rust_src"):
            session.graph()


class TestBuildSessionRun:
    def test_builds_std_then_user_code(self, make_config, host, workspace) -> None:
        from buildstd_tooling.stdlib import StdComponent

        driver = FakeDriver()
        session = _session(make_config(_base_config()), host, driver=driver)
        report = session.run()
        assert report.ok
        assert report.errors == []
        for c in (StdComponent.CORE, StdComponent.ALLOC, StdComponent.STD):
            assert report.std_status[(c, host.key)] == "done"
        assert report.packages[("app", host.key)] == "done"
        assert report.packages[("util", host.key)] == "done"
        order = driver.compiled
        assert order.index(f"std@{host.name}") < order.index(f"util@{host.name}")
        assert order.index(f"util@{host.name}") < order.index(f"app@{host.name}")

    def test_std_dylibs_are_filtered(self, make_config, host, workspace) -> None:
        config = make_config(_base_config())
        _session(config, host).run()
        deps = config.target_dir / "debug" / "deps"
        names = sorted(p.name for p in deps.iterdir())
        assert any(n.startswith("libstd-") and n.endswith(".rlib") for n in names)
        assert not [n for n in names if n.endswith(".so")]

    def test_progress_events(self, make_config, host, workspace) -> None:
        from buildstd_tooling.progress import RESOLVER_STATUSES, ProgressReporter

        reporter = ProgressReporter(quiet=True)
        _session(make_config(_base_config()), host, reporter=reporter).run()
        statuses = reporter.statuses()
        assert statuses.count("Compiling") == 5
        assert statuses[-1] == "Finished"
        assert not set(statuses) & RESOLVER_STATUSES
        assert any(e.message == f"core ({host.name})" for e in reporter.events)

    def test_lockfile_untouched(self, make_config, host, workspace) -> None:
        _session(make_config(_base_config()), host).run()
        assert (workspace / "Cargo.lock").read_text() == "version = 3\n"

    def test_second_session_is_fresh(self, make_config, host, workspace) -> None:
        from buildstd_tooling.progress import ProgressReporter

        config = make_config(_base_config())
        _session(config, host).run()
        driver = FakeDriver()
        reporter = ProgressReporter(quiet=True)
        report = _session(config, host, driver=driver, reporter=reporter).run()
        assert report.ok
        assert driver.compiled == []
        assert reporter.statuses().count("Fresh") == 5
        assert set(report.std_status.values()) == {"fresh"}

    def test_source_change_rebuilds_user_unit(self, make_config, host, workspace) -> None:
        config = make_config(_base_config())
        _session(config, host).run()
        (workspace / "app" / "src" / "lib.rs").write_text("// changed\n")
        driver = FakeDriver()
        _session(config, host, driver=driver).run()
        assert driver.compiled == [f"app@{host.name}"]

    def test_failure_skips_dependents_and_reports(self, make_config, host, workspace) -> None:
        from buildstd_tooling.progress import ProgressReporter

        reporter = ProgressReporter(quiet=True)
        driver = FakeDriver(fail=("util",))
        report = _session(make_config(_base_config()), host, driver=driver, reporter=reporter).run()
        assert not report.ok
        assert report.packages[("util", host.key)] == "failed"
        assert report.packages[("app", host.key)] == "skipped"
        assert f"app@{host.name}" not in driver.compiled
        assert any("could not compile `util`" in e for e in report.errors)
        assert "error" in reporter.statuses()
        assert "Finished" not in reporter.statuses()

    def test_failed_target_does_not_stop_other_sysroot(
        self, make_config, host, workspace, write_target_spec
    ) -> None:
        write_target_spec("fw-target", {"panic-strategy": "unwind"}, base=BARE_X86_64)
        data = {
            "target": "x86_64-unknown-none",
            "build_std": ["core"],
            "rust_src": "rust-src",
            "features": ["per-package-target"],
            "packages": {
                "app": {"path": "app"},
                "fw": {"path": "fw", "forced_target": "../fw-target.json"},
            },
        }
        driver = FakeDriver(fail=("app",))
        report = _session(make_config(data), host, driver=driver).run()
        keys = {e.target.name: e.target.key for e in report.plan}
        assert not report.ok
        assert report.packages[("app", keys["x86_64-unknown-none"])] == "failed"
        assert report.packages[("fw", keys["fw-target"])] == "done"
        assert len(report.std_status) == 2
        assert set(report.std_status.values()) == {"done"}

    def test_same_name_targets_report_separately(
        self, make_config, host, workspace, write_target_spec
    ) -> None:
        write_target_spec("x86_64-unknown-none", {"panic-strategy": "unwind"}, base=BARE_X86_64)
        data = {
            "target": "x86_64-unknown-none",
            "build_std": ["core"],
            "rust_src": "rust-src",
            "features": ["per-package-target"],
            "packages": {
                "app": {"path": "app", "dependencies": ["util"]},
                "fw": {
                    "path": "fw",
                    "forced_target": "../x86_64-unknown-none.json",
                    "dependencies": ["util"],
                },
                "util": {"path": "util"},
            },
        }
        report = _session(make_config(data), host).run()
        assert report.ok
        util_keys = {key for name, key in report.packages if name == "util"}
        assert util_keys == {e.target.key for e in report.plan}
        assert len(util_keys) == 2


    def test_cross_target_layout(self, make_config, host, workspace) -> None:
        data = _base_config(target="x86_64-unknown-none", build_std=["core"])
        config = make_config(data)
        session = _session(config, host)
        report = session.run()
        assert report.ok
        deps = config.target_dir / "x86_64-unknown-none" / "debug" / "deps"
        assert any(p.name.startswith("libcore-") for p in deps.iterdir())
        assert not (config.target_dir / "debug").exists()

    def test_without_build_std_uses_plain_layout(self, make_config, host, workspace) -> None:
        data = _base_config()
        del data["build_std"]
        config = make_config(data)
        report = _session(config, host).run()
        assert report.ok
        assert report.std_status == {}
        assert (config.target_dir / "debug" / "deps").is_dir()

    def test_test_mode_builds_harnesses(self, make_config, host, workspace) -> None:
        from buildstd_tooling.stdlib import StdComponent

        report = _session(make_config(_base_config(mode="test")), host).run()
        assert report.ok
        assert report.std_status[(StdComponent.TEST, host.key)] == "done"
        assert report.tests[("app", host.key)] == "done"


class TestCheckMode:
    def test_proc_macros_and_build_scripts_are_linked(self, make_config, host, workspace) -> None:
        data = _base_config(mode="check")
        data["packages"]["app"].update({"dependencies": ["util", "mac"], "build_script": True})
        data["packages"]["mac"] = {"path": "mac", "proc_macro": True}
        driver = FakeDriver()
        report = _session(make_config(data), host, driver=driver).run()
        assert report.ok, report.errors

        mac = driver.commands[("user", "mac", host.name)]
        assert "--emit=dep-info,metadata,link" in mac
        app = driver.commands[("user", "app", host.name)]
        assert "--emit=dep-info,metadata" in app
        app_externs = [app[i + 1] for i, a in enumerate(app) if a == "--extern"]
        assert any(e.startswith("mac=") and e.endswith(".so") for e in app_externs)

        script = driver.commands[("build-script", "app", host.name)]
        assert "--emit=dep-info,metadata,link" in script
        script_externs = [script[i + 1] for i, a in enumerate(script) if a == "--extern"]
        assert any(e.startswith("noprelude:std=") and e.endswith(".rlib") for e in script_externs)
        assert not [e for e in script_externs if e.endswith(".rmeta")]
        assert report.uplifted == []


class TestFreshness:
    def test_std_source_change_rebuilds_std_and_dependents(
        self, make_config, host, workspace
    ) -> None:
        core_src = workspace / "rust-src" / "core" / "src"
        core_src.mkdir(parents=True)
        (core_src / "lib.rs").write_text("#![no_core]\n")
        config = make_config(_base_config())
        _session(config, host).run()
        (core_src / "lib.rs").write_text("#![no_core]\n// patched\n")
        driver = FakeDriver()
        _session(config, host, driver=driver).run()
        assert f"core@{host.name}" in driver.compiled
        assert f"app@{host.name}" in driver.compiled

    def test_module_file_change_rebuilds_unit_and_dependents(
        self, make_config, host, workspace
    ) -> None:
        extra = workspace / "util" / "src" / "extra.rs"
        extra.write_text("pub fn a() {}\n")
        config = make_config(_base_config())
        _session(config, host).run()
        extra.write_text("pub fn b() {}\n")
        driver = FakeDriver()
        _session(config, host, driver=driver).run()
        assert driver.compiled == [f"util@{host.name}", f"app@{host.name}"]

    def test_toolchain_change_rebuilds_everything(
        self, make_config, host, workspace, monkeypatch
    ) -> None:
        from buildstd_tooling import orchestrator

        config = make_config(_base_config())
        monkeypatch.setattr(orchestrator, "rustc_version", lambda rustc: "rustc 1.80.0")
        _session(config, host).run()
        monkeypatch.setattr(orchestrator, "rustc_version", lambda rustc: "rustc 1.81.0")
        driver = FakeDriver()
        _session(config, host, driver=driver).run()
        assert len(driver.compiled) == 5

    def test_toolchain_id_without_rustc(self, make_config, host, workspace, monkeypatch) -> None:
        from buildstd_tooling import orchestrator

        monkeypatch.setattr(orchestrator, "rustc_version", lambda rustc: None)
        config = make_config(_base_config())
        assert _session(config, host).toolchain_id() == config.rustc


class TestUplift:
    def test_forced_target_bin_lands_in_its_layout_root(
        self, make_config, host, workspace, write_target_spec
    ) -> None:
        write_target_spec("fw-target", {"panic-strategy": "unwind"}, base=BARE_X86_64)
        data = {
            "target": "x86_64-unknown-none",
            "build_std": ["core"],
            "rust_src": "rust-src",
            "features": ["per-package-target"],
            "packages": {
                "app": {"path": "app"},
                "fw": {
                    "path": "fw",
                    "crate_types": ["bin"],
                    "forced_target": "../fw-target.json",
                },
            },
        }
        config = make_config(data)
        report = _session(config, host).run()
        assert report.ok
        fw_bin = config.target_dir / "fw-target" / "debug" / "fw"
        app_lib = config.target_dir / "x86_64-unknown-none" / "debug" / "libapp.rlib"
        assert fw_bin.is_file()
        assert app_lib.is_file()
        assert report.uplifted == sorted([fw_bin, app_lib])

    def test_only_members_are_uplifted(self, make_config, host, workspace) -> None:
        config = make_config(_base_config())
        _session(config, host).run()
        profile_dir = config.target_dir / "debug"
        assert (profile_dir / "libapp.rlib").is_file()
        assert not (profile_dir / "libutil.rlib").exists()
        assert not list(profile_dir.glob("libstd*"))

    def test_check_mode_uplifts_nothing(self, make_config, host, workspace) -> None:
        config = make_config(_base_config(mode="check"))
        report = _session(config, host).run()
        assert report.ok
        assert report.uplifted == []
        assert not (config.target_dir / "debug" / "libapp.rlib").exists()


class TestCleanDylibs:
    def test_removes_stray_std_dylibs(self, make_config, host, workspace) -> None:
        config = make_config(_base_config())
        deps = config.target_dir / "debug" / "deps"
        deps.mkdir(parents=True)
        (deps / "libstd-0011.so").write_text("")
        (deps / "libstd-0011.rlib").write_text("")
        (deps / "libapp-0022.so").write_text("")
        removed = _session(config, host).clean_dylibs()
        assert [p.name for p in removed] == ["libstd-0011.so"]
        assert (deps / "libapp-0022.so").exists()
