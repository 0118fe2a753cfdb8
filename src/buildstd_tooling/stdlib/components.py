"""The fixed std component set and its static dependency table."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from buildstd_tooling.errors import InconsistentStdRequest


class StdComponent(str, Enum):
    CORE = "core"
    ALLOC = "alloc"
    STD = "std"
    PROC_MACRO = "proc_macro"
    TEST = "test"

    @classmethod
    def parse(cls, name: str) -> StdComponent:
        """Accept `proc-macro` as well as `proc_macro`."""
        try:
            return cls(name.replace("-", "_"))
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            msg = f"unknown build-std component `{name}` (expected one of: {valid})"
            raise InconsistentStdRequest(msg) from None

    @property
    def deps(self) -> frozenset[StdComponent]:
        return COMPONENT_DEPS[self]

    def __str__(self) -> str:
        return self.value


COMPONENT_DEPS: dict[StdComponent, frozenset[StdComponent]] = {
    StdComponent.CORE: frozenset(),
    StdComponent.ALLOC: frozenset({StdComponent.CORE}),
    StdComponent.STD: frozenset({StdComponent.ALLOC, StdComponent.CORE}),
    StdComponent.PROC_MACRO: frozenset({StdComponent.STD}),
    StdComponent.TEST: frozenset({StdComponent.STD}),
}


def _topo() -> tuple[StdComponent, ...]:
    order: list[StdComponent] = []
    visiting: set[StdComponent] = set()

    def visit(c: StdComponent) -> None:
        if c in order:
            return
        if c in visiting:
            msg = f"cycle in std component table at {c}"
            raise RuntimeError(msg)
        visiting.add(c)
        for d in sorted(COMPONENT_DEPS[c], key=lambda x: x.value):
            visit(d)
        visiting.discard(c)
        order.append(c)

    for c in StdComponent:
        visit(c)
    return tuple(order)


# Computed at import; raises if the table ever gains a cycle.
TOPOLOGICAL_ORDER = _topo()


def closure(components: Iterable[StdComponent]) -> frozenset[StdComponent]:
    """Transitive closure of components under the dependency table."""
    out: set[StdComponent] = set()
    stack = list(components)
    while stack:
        c = stack.pop()
        if c in out:
            continue
        out.add(c)
        stack.extend(COMPONENT_DEPS[c])
    return frozenset(out)


def parse_components(names: Iterable[str]) -> frozenset[StdComponent]:
    return frozenset(StdComponent.parse(n) for n in names)


def topological_order(components: Iterable[StdComponent]) -> list[StdComponent]:
    """Components sorted leaf first (core before alloc before std)."""
    wanted = set(components)
    return [c for c in TOPOLOGICAL_ORDER if c in wanted]


def format_components(components: Iterable[StdComponent]) -> str:
    return "{" + ", ".join(c.value for c in topological_order(components)) + "}"
