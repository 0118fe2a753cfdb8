"""Compiler driver: one rustc invocation per build unit."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from buildstd_tooling.artifacts import ArtifactKind, ArtifactRecord
from buildstd_tooling.errors import UnitFailed
from buildstd_tooling.graph.units import BUILD_SCRIPT_UNIT, BuildUnit

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledDep:
    """A finished dependency as seen by the unit that links against it."""

    unit: BuildUnit
    record: ArtifactRecord


def _extern_file(dep: CompiledDep, check: bool) -> Path | None:
    if dep.unit.crate_types == ("proc-macro",):
        libs = dep.record.of_kind(ArtifactKind.DYNAMIC_LIB)
        return libs[0] if libs else None
    order = (ArtifactKind.METADATA, ArtifactKind.STATIC_LIB)
    if not check:
        order = order[::-1]
    for kind in order:
        files = [f for f in dep.record.of_kind(kind) if f.suffix in (".rlib", ".rmeta")]
        if files:
            return files[0]
    return None


class RustcDriver:
    def __init__(self, rustc: str = "rustc", cwd: Path | None = None):
        self.rustc = rustc
        self.cwd = cwd

    def command(self, unit: BuildUnit, deps: list[CompiledDep], out_dir: Path) -> list[str]:
        """The full rustc argv for unit, with dependencies passed via --extern."""
        cmd = [
            self.rustc,
            "--crate-name",
            unit.crate_name,
            "--edition",
            unit.edition,
            str(unit.source),
            *unit.flags,
            "--out-dir",
            str(out_dir),
            "-C",
            f"extra-filename=-{unit.metadata_hash}",
            "-L",
            f"dependency={out_dir}",
        ]
        search = {out_dir}
        check = not unit.profile.emits_link
        for dep in deps:
            if dep.unit.kind == BUILD_SCRIPT_UNIT:
                continue
            path = _extern_file(dep, check)
            if path is None:
                msg = f"dependency `{dep.unit.name}` produced nothing to link against"
                raise UnitFailed(unit.name, unit.target.name, msg)
            if path.parent not in search:
                search.add(path.parent)
                cmd += ["-L", f"dependency={path.parent}"]
            # std crates must not be injected into the prelude of user code twice.
            prefix = "noprelude:" if dep.unit.is_std and not unit.is_std else ""
            cmd += ["--extern", f"{prefix}{dep.unit.crate_name}={path}"]
        return cmd

    def _env(self, unit: BuildUnit) -> dict[str, str]:
        env = dict(os.environ)
        if unit.is_std:
            # std sources use unstable features.
            env["RUSTC_BOOTSTRAP"] = "1"
        return env

    def outputs(self, unit: BuildUnit, out_dir: Path) -> ArtifactRecord:
        files = sorted(out_dir.glob(f"*{unit.crate_name}-{unit.metadata_hash}*"))
        return ArtifactRecord(unit.name, unit.target.key, tuple(files))

    def compile(self, unit: BuildUnit, deps: list[CompiledDep], out_dir: Path) -> ArtifactRecord:
        """Run rustc for unit. Raises UnitFailed on a non-zero exit or missing compiler."""
        out_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.command(unit, deps, out_dir)
        log.debug("running: %s", " ".join(cmd))
        try:
            r = subprocess.run(
                cmd,
                cwd=str(self.cwd) if self.cwd else None,
                env=self._env(unit),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise UnitFailed(unit.name, unit.target.name, f"cannot run {self.rustc}: {e}") from e
        if r.returncode != 0:
            raise UnitFailed(unit.name, unit.target.name, r.stderr or r.stdout)
        if r.stderr:
            log.debug("%s stderr:\n%s", unit.describe(), r.stderr.rstrip())
        record = self.outputs(unit, out_dir)
        if not record.files:
            msg = f"rustc exited 0 but wrote no outputs to {out_dir}"
            raise UnitFailed(unit.name, unit.target.name, msg)
        return record
