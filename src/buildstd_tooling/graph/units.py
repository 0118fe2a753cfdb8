"""Build units and the shared unit graph (arena + index; units referenced by int id)."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from buildstd_tooling.config import WorkspaceConfig
from buildstd_tooling.errors import PlanningError
from buildstd_tooling.helpers import content_digest, profile_dir_name
from buildstd_tooling.stdlib.components import StdComponent
from buildstd_tooling.targets.descriptor import TargetDescriptor

STD_UNIT = "std"
USER_UNIT = "user"
BUILD_SCRIPT_UNIT = "build-script"


@dataclass(frozen=True)
class CompileProfile:
    name: str = "dev"
    mode: str = "build"

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> CompileProfile:
        return cls(name=config.profile, mode=config.mode)

    @property
    def opt_level(self) -> str:
        return "3" if self.name == "release" else "0"

    @property
    def debuginfo(self) -> str:
        return "0" if self.name == "release" else "2"

    @property
    def dir_name(self) -> str:
        return profile_dir_name(self.name)

    @property
    def emits_link(self) -> bool:
        return self.mode != "check"


@dataclass(frozen=True)
class BuildUnit:
    kind: str
    name: str
    crate_name: str
    target: TargetDescriptor
    profile: CompileProfile
    crate_types: tuple[str, ...]
    flags: tuple[str, ...]
    source: Path
    edition: str = "2021"
    component: StdComponent | None = None
    host: bool = False
    variant: str = ""

    @property
    def key(self) -> tuple[str, str, str, str, str]:
        return (self.kind, self.name, self.target.key, self.profile.name, self.variant)

    @property
    def is_std(self) -> bool:
        return self.kind == STD_UNIT

    @property
    def metadata_hash(self) -> str:
        """Stable per-unit suffix for output file names (-C extra-filename)."""
        return content_digest([*self.key, list(self.flags)])[:16]

    def describe(self) -> str:
        label = self.name if not self.variant else f"{self.name} ({self.variant})"
        return f"{label} [{self.target.name}]"


class UnitGraph:
    """All build units of a session, std and user alike, in one DAG."""

    def __init__(self) -> None:
        self._units: list[BuildUnit] = []
        self._index: dict[tuple[str, str, str, str, str], int] = {}
        self._deps: list[set[int]] = []
        self._rdeps: list[set[int]] = []

    def __len__(self) -> int:
        return len(self._units)

    def __iter__(self) -> Iterator[int]:
        return iter(range(len(self._units)))

    def __getitem__(self, unit_id: int) -> BuildUnit:
        return self._units[unit_id]

    def add(self, unit: BuildUnit) -> int:
        """Insert unit, or return the id of the identical unit already present.

        Raises PlanningError when a unit with the same key but different flags exists.
        """
        existing = self._index.get(unit.key)
        if existing is not None:
            other = self._units[existing]
            if other.flags != unit.flags or other.crate_types != unit.crate_types:
                msg = (
                    f"conflicting build units for {unit.describe()}: "
                    f"{' '.join(other.flags)!r} vs {' '.join(unit.flags)!r}"
                )
                raise PlanningError(msg)
            return existing
        unit_id = len(self._units)
        self._units.append(unit)
        self._index[unit.key] = unit_id
        self._deps.append(set())
        self._rdeps.append(set())
        return unit_id

    def add_edge(self, unit_id: int, dep_id: int) -> None:
        """unit_id depends on dep_id."""
        if unit_id == dep_id:
            msg = f"unit {self._units[unit_id].describe()} cannot depend on itself"
            raise PlanningError(msg)
        self._deps[unit_id].add(dep_id)
        self._rdeps[dep_id].add(unit_id)

    def deps(self, unit_id: int) -> list[int]:
        return sorted(self._deps[unit_id])

    def dependents(self, unit_id: int) -> list[int]:
        return sorted(self._rdeps[unit_id])

    def transitive_dependents(self, unit_id: int) -> set[int]:
        out: set[int] = set()
        stack = list(self._rdeps[unit_id])
        while stack:
            i = stack.pop()
            if i in out:
                continue
            out.add(i)
            stack.extend(self._rdeps[i])
        return out

    def std_units(self, target: TargetDescriptor | None = None) -> list[int]:
        return [
            i
            for i, u in enumerate(self._units)
            if u.is_std and (target is None or u.target == target)
        ]

    def user_units(self) -> list[int]:
        return [i for i, u in enumerate(self._units) if not u.is_std]

    def topological_order(self) -> list[int]:
        """Dependencies first. Raises PlanningError on a cycle."""
        remaining = {i: len(self._deps[i]) for i in self}
        ready = sorted(i for i, n in remaining.items() if n == 0)
        order: list[int] = []
        while ready:
            i = ready.pop(0)
            order.append(i)
            for d in sorted(self._rdeps[i]):
                remaining[d] -= 1
                if remaining[d] == 0:
                    ready.append(d)
        if len(order) != len(self._units):
            stuck = sorted(self._units[i].describe() for i, n in remaining.items() if n > 0)
            msg = f"cycle in build graph involving: {', '.join(stuck)}"
            raise PlanningError(msg)
        return order
