"""Per-unit freshness stamps under <target_dir>/.fingerprint.

A unit is fresh when its stamp exists, the recorded fingerprint matches the one computed
now, every recorded artifact is still on disk, and every source file listed in the unit's
dep-info still has the digest it had when the unit was compiled.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from buildstd_tooling.artifacts import ArtifactKind, ArtifactRecord
from buildstd_tooling.graph.units import BuildUnit
from buildstd_tooling.helpers import content_digest, file_digest

log = logging.getLogger(__name__)

FINGERPRINT_DIR = ".fingerprint"


@dataclass(frozen=True)
class FingerprintInput:
    unit_key: tuple[str, ...]
    flags: tuple[str, ...]
    source_hash: str
    toolchain: str
    dependencies: tuple[str, ...] = ()
    snapshot: str = ""


def fingerprint(inputs: FingerprintInput) -> str:
    return content_digest(
        {
            "unit": list(inputs.unit_key),
            "flags": list(inputs.flags),
            "source": inputs.source_hash,
            "toolchain": inputs.toolchain,
            "dependencies": list(inputs.dependencies),
            "snapshot": inputs.snapshot,
        }
    )


def unit_fingerprint(
    unit: BuildUnit,
    dep_fingerprints: list[str] | tuple[str, ...],
    toolchain: str,
    snapshot_digest: str = "",
) -> str:
    """Hash of everything known before compiling: flags, root source, toolchain, deps.

    toolchain should be the full `rustc -vV` output so a compiler upgrade invalidates
    every stamp. Files reached through `mod` are covered by the dep-info check in
    FingerprintCache.lookup.
    """
    return fingerprint(
        FingerprintInput(
            unit_key=unit.key,
            flags=unit.flags,
            source_hash=file_digest(unit.source) or "",
            toolchain=toolchain,
            dependencies=tuple(sorted(dep_fingerprints)),
            snapshot=snapshot_digest if unit.is_std else "",
        )
    )


def output_fingerprint(fp: str, sources: dict[str, str | None]) -> str:
    """What dependents see: the unit fingerprint plus the digests of its dep-info sources."""
    return content_digest({"fingerprint": fp, "sources": sources})


def _split_dep_paths(text: str) -> list[str]:
    """Split a make-style dependency list; `\\ ` is an escaped space."""
    out: list[str] = []
    current = ""
    i = 0
    while i < len(text):
        c = text[i]
        if c == "\\" and i + 1 < len(text) and text[i + 1] == " ":
            current += " "
            i += 2
            continue
        if c.isspace():
            if current:
                out.append(current)
            current = ""
        else:
            current += c
        i += 1
    if current:
        out.append(current)
    return out


def parse_dep_info(path: Path, root: Path | None = None) -> list[Path]:
    """Source files listed in a rustc `.d` file, relative paths resolved against root."""
    try:
        text = path.read_text()
    except OSError as e:
        log.debug("cannot read dep-info %s: %s", path, e)
        return []
    seen: dict[Path, None] = {}
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        _, sep, deps = line.partition(": ")
        if not sep:
            continue
        for dep in _split_dep_paths(deps):
            p = Path(dep)
            if not p.is_absolute() and root is not None:
                p = root / p
            seen.setdefault(p, None)
    return list(seen)


class FingerprintCache:
    def __init__(self, target_dir: Path, root: Path | None = None):
        self.root = target_dir / FINGERPRINT_DIR
        # rustc runs in the workspace root; dep-info paths may be relative to it.
        self.source_root = root

    def stamp_path(self, unit: BuildUnit) -> Path:
        return self.root / unit.target.name / f"{unit.crate_name}-{unit.metadata_hash}.json"

    def lookup(self, unit: BuildUnit, fp: str) -> ArtifactRecord | None:
        """The recorded artifacts when unit is fresh, else None."""
        path = self.stamp_path(unit)
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            log.debug("ignoring unreadable stamp %s: %s", path, e)
            return None
        if not isinstance(data, dict) or data.get("fingerprint") != fp:
            return None
        files = tuple(Path(f) for f in data.get("artifacts") or [])
        if not files or not all(f.exists() for f in files):
            return None
        sources = data.get("sources") or {}
        for src, digest in sources.items():
            if file_digest(Path(src)) != digest:
                log.debug("%s is stale: %s changed", unit.describe(), src)
                return None
        return ArtifactRecord(unit.name, unit.target.key, files)

    def source_digests(self, record: ArtifactRecord) -> dict[str, str | None]:
        out: dict[str, str | None] = {}
        for d in record.of_kind(ArtifactKind.DEP_INFO):
            for src in parse_dep_info(d, self.source_root):
                out[str(src)] = file_digest(src)
        return out

    def store(self, unit: BuildUnit, fp: str, record: ArtifactRecord) -> Path:
        path = self.stamp_path(unit)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "unit": unit.describe(),
            "fingerprint": fp,
            "artifacts": [str(f) for f in record.files],
            "sources": self.source_digests(record),
        }
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
        return path
