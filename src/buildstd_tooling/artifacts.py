"""Build outputs: classification, std filtering, and uplifting of final artifacts.

Sysroot components ship as static libs and metadata only. rustc may emit a dylib (or, on
some targets, an executable) next to the rlib for std crates. Those files must not be
visible to dependents, so they are deleted before the std unit is reported complete.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from buildstd_tooling.errors import ArtifactFilterError

log = logging.getLogger(__name__)


class ArtifactKind(Enum):
    STATIC_LIB = "static-lib"
    DYNAMIC_LIB = "dynamic-lib"
    METADATA = "metadata"
    DEP_INFO = "dep-info"
    EXECUTABLE = "executable"
    OTHER = "other"


# Checked in order; compound suffixes first.
_SUFFIX_KINDS: tuple[tuple[str, ArtifactKind], ...] = (
    (".dll.a", ArtifactKind.DYNAMIC_LIB),
    (".dll.lib", ArtifactKind.DYNAMIC_LIB),
    (".rlib", ArtifactKind.STATIC_LIB),
    (".a", ArtifactKind.STATIC_LIB),
    (".lib", ArtifactKind.STATIC_LIB),
    (".so", ArtifactKind.DYNAMIC_LIB),
    (".dylib", ArtifactKind.DYNAMIC_LIB),
    (".dll", ArtifactKind.DYNAMIC_LIB),
    (".rmeta", ArtifactKind.METADATA),
    (".d", ArtifactKind.DEP_INFO),
    (".exe", ArtifactKind.EXECUTABLE),
)

REMOVED_KINDS = frozenset({ArtifactKind.DYNAMIC_LIB, ArtifactKind.EXECUTABLE})
LINKABLE_KINDS = frozenset({ArtifactKind.STATIC_LIB, ArtifactKind.METADATA})
UPLIFT_KINDS = frozenset(
    {ArtifactKind.STATIC_LIB, ArtifactKind.DYNAMIC_LIB, ArtifactKind.EXECUTABLE}
)


def classify(path: Path | str) -> ArtifactKind:
    name = Path(path).name.lower()
    for suffix, kind in _SUFFIX_KINDS:
        if name.endswith(suffix):
            return kind
    # `<crate>-<hash>` with no extension is what rustc writes for bin crates on unix.
    if "." not in name:
        return ArtifactKind.EXECUTABLE
    return ArtifactKind.OTHER


@dataclass(frozen=True)
class ArtifactRecord:
    unit_name: str
    target_key: str
    files: tuple[Path, ...]

    def of_kind(self, kind: ArtifactKind) -> list[Path]:
        return [f for f in self.files if classify(f) is kind]

    @property
    def linkable(self) -> list[Path]:
        return [f for f in self.files if classify(f) in LINKABLE_KINDS]


def filter_record(record: ArtifactRecord) -> ArtifactRecord:
    """Delete dynamic libs and executables; return the record of what is kept.

    Safe to call twice: already-missing files are ignored. Raises ArtifactFilterError
    when no static lib or metadata file is left.
    """
    kept: list[Path] = []
    for f in record.files:
        if classify(f) in REMOVED_KINDS:
            if f.exists():
                f.unlink()
                log.debug("removed %s", f)
        else:
            kept.append(f)
    out = ArtifactRecord(record.unit_name, record.target_key, tuple(kept))
    if not out.linkable:
        msg = (
            f"std unit `{record.unit_name}` for target {record.target_key[:8]} "
            "left no static library or metadata after filtering"
        )
        raise ArtifactFilterError(msg)
    return out


def filter_output_dir(deps_dir: Path, crate_names: list[str] | tuple[str, ...]) -> list[Path]:
    """Delete dynamic libs and executables of the given std crates from deps_dir.

    Matches both `lib<crate>-*` and `<crate>-*` (Windows has no lib prefix).
    Returns the removed paths.
    """
    if not deps_dir.is_dir():
        return []
    removed: list[Path] = []
    for crate in crate_names:
        candidates = set(deps_dir.glob(f"lib{crate}-*")) | set(deps_dir.glob(f"{crate}-*"))
        for f in sorted(candidates):
            if f.is_file() and classify(f) in REMOVED_KINDS:
                f.unlink()
                removed.append(f)
                log.debug("removed %s", f)
    return removed


def uplift_record(
    record: ArtifactRecord, dest_dir: Path, extra_filename: str, bin_name: str | None = None
) -> list[Path]:
    """Copy final libraries and binaries out of deps/ into dest_dir without the hash suffix.

    `deps/libfoo-<hash>.rlib` becomes `dest_dir/libfoo.rlib`; an executable is named after
    bin_name when given (package names may contain '-', crate names may not).
    Returns the destination paths.
    """
    copied: list[Path] = []
    for f in record.files:
        kind = classify(f)
        if kind not in UPLIFT_KINDS:
            continue
        if kind is ArtifactKind.EXECUTABLE and bin_name:
            name = bin_name + (".exe" if f.name.lower().endswith(".exe") else "")
        else:
            name = f.name.replace(extra_filename, "", 1)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dst = dest_dir / name
        shutil.copy2(f, dst)
        if kind is ArtifactKind.EXECUTABLE:
            dst.chmod(0o755)
        log.debug("uplifted %s -> %s", f.name, dst)
        copied.append(dst)
    return copied
