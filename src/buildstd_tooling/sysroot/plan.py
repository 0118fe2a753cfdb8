"""SysrootPlan: the read-only per-target std component mapping for one session."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from buildstd_tooling.helpers import profile_dir_name
from buildstd_tooling.stdlib.components import StdComponent, format_components
from buildstd_tooling.targets.descriptor import TargetDescriptor


@dataclass(frozen=True)
class PlanEntry:
    target: TargetDescriptor
    components: frozenset[StdComponent]
    requested_by: tuple[str, ...]
    # Directory under target_dir; None for the default host layout (target/<profile>).
    layout_dir: str | None

    def describe(self) -> str:
        return f"{self.target.name}: {format_components(self.components)}"


class SysrootPlan:
    """Mapping of target content key -> PlanEntry. Never persisted, never mutated."""

    def __init__(self, entries: Mapping[str, PlanEntry]):
        self._entries = MappingProxyType(dict(entries))

    @property
    def entries(self) -> Mapping[str, PlanEntry]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PlanEntry]:
        return iter(self._entries.values())

    def __contains__(self, target: object) -> bool:
        return isinstance(target, TargetDescriptor) and target.key in self._entries

    def __bool__(self) -> bool:
        return bool(self._entries)

    def entry(self, target: TargetDescriptor) -> PlanEntry | None:
        return self._entries.get(target.key)

    def targets(self) -> list[TargetDescriptor]:
        return [e.target for e in self._entries.values()]

    def components_for(self, target: TargetDescriptor) -> frozenset[StdComponent]:
        e = self._entries.get(target.key)
        return e.components if e is not None else frozenset()

    def layout_root(self, target: TargetDescriptor, target_dir: Path, profile: str) -> Path:
        """target_dir/<layout>/<profile> for a planned target."""
        e = self._entries.get(target.key)
        if e is None:
            msg = f"target {target.describe()} is not in the sysroot plan"
            raise KeyError(msg)
        base = target_dir if e.layout_dir is None else target_dir / e.layout_dir
        return base / profile_dir_name(profile)

    def deps_dir(self, target: TargetDescriptor, target_dir: Path, profile: str) -> Path:
        return self.layout_root(target, target_dir, profile) / "deps"

    def artifact_dir(
        self, component: StdComponent, target: TargetDescriptor, target_dir: Path, profile: str
    ) -> Path:
        """Where the filtered artifacts of (component, target) live, for link resolution."""
        if component not in self.components_for(target):
            msg = f"{component} is not planned for {target.describe()}"
            raise KeyError(msg)
        return self.deps_dir(target, target_dir, profile)

    def summary(self) -> list[str]:
        return [e.describe() for e in self._entries.values()]
