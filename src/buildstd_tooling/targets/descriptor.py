"""Target descriptors: normalized target content with a structural identity key.

Two descriptors are the same target if and only if their normalized content is
identical. The user-facing spelling (a built-in triple or a path to a JSON file) is kept
for messages, output directory names and the `--target` argument, but never compared.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from buildstd_tooling.errors import MalformedTargetSpec
from buildstd_tooling.helpers import content_digest, short_key

REQUIRED_FIELDS = ("llvm-target", "data-layout", "arch", "target-pointer-width")

# Materialized so an omitted default and an explicit default normalize identically.
DEFAULT_FIELDS: dict[str, Any] = {
    "target-endian": "little",
    "target-c-int-width": 32,
    "os": "none",
    "env": "",
    "vendor": "unknown",
    "panic-strategy": "unwind",
    "executables": False,
}

INT_FIELDS = ("target-pointer-width", "target-c-int-width")
STR_FIELDS = (
    "llvm-target",
    "data-layout",
    "arch",
    "os",
    "env",
    "vendor",
    "linker-flavor",
    "linker",
)
PANIC_STRATEGIES = ("unwind", "abort")
ENDIANS = ("little", "big")


def _as_int(raw: Any, name: str, origin: str | None) -> int:
    if isinstance(raw, bool):
        raise MalformedTargetSpec(name, "expected an integer, got a boolean", origin)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise MalformedTargetSpec(name, f"expected an integer, got {raw!r}", origin)


def normalize_target_spec(raw: Any, origin: str | None = None) -> dict[str, Any]:
    """Validate custom target content and return it with defaults filled in.

    Unknown fields are kept verbatim: rustc honours many more keys than the ones checked
    here, and any of them may change the compiled std.
    """
    if not isinstance(raw, dict):
        raise MalformedTargetSpec("<root>", "target spec must be a JSON object", origin)
    for name in REQUIRED_FIELDS:
        if name not in raw:
            raise MalformedTargetSpec(name, "required field is missing", origin)

    out: dict[str, Any] = dict(DEFAULT_FIELDS)
    for name, value in raw.items():
        if not isinstance(name, str):
            raise MalformedTargetSpec(str(name), "field names must be strings", origin)
        if name in INT_FIELDS:
            value = _as_int(value, name, origin)
            if value <= 0:
                raise MalformedTargetSpec(name, f"must be positive, got {value}", origin)
        elif name in STR_FIELDS:
            if not isinstance(value, str):
                raise MalformedTargetSpec(name, f"expected a string, got {value!r}", origin)
        elif name == "executables":
            if not isinstance(value, bool):
                raise MalformedTargetSpec(name, f"expected true or false, got {value!r}", origin)
        elif name == "panic-strategy":
            if value not in PANIC_STRATEGIES:
                raise MalformedTargetSpec(
                    name, f"expected one of {', '.join(PANIC_STRATEGIES)}, got {value!r}", origin
                )
        elif name == "target-endian":
            if value not in ENDIANS:
                raise MalformedTargetSpec(
                    name, f"expected one of {', '.join(ENDIANS)}, got {value!r}", origin
                )
        out[name] = value

    if not out["llvm-target"]:
        raise MalformedTargetSpec("llvm-target", "must not be empty", origin)
    if not out["arch"]:
        raise MalformedTargetSpec("arch", "must not be empty", origin)
    return out


@dataclass(frozen=True, eq=False)
class TargetDescriptor:
    """Resolved target. Immutable for the whole session; identity is `key`."""

    name: str
    content: Mapping[str, Any] = field(repr=False)
    key: str = ""
    source: Path | None = None

    @classmethod
    def from_content(
        cls, name: str, content: dict[str, Any], source: Path | None = None
    ) -> TargetDescriptor:
        """Build a descriptor from already-normalized content."""
        frozen = MappingProxyType(copy.deepcopy(dict(sorted(content.items()))))
        return cls(name=name, content=frozen, key=content_digest(content), source=source)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TargetDescriptor):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def get(self, name: str, default: Any = None) -> Any:
        return self.content.get(name, default)

    def as_dict(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.content))

    @property
    def is_custom(self) -> bool:
        return self.source is not None

    @property
    def llvm_target(self) -> str:
        return self.get("llvm-target")

    @property
    def arch(self) -> str:
        return self.get("arch")

    @property
    def os(self) -> str:
        return self.get("os")

    @property
    def data_layout(self) -> str:
        return self.get("data-layout")

    @property
    def endian(self) -> str:
        return self.get("target-endian")

    @property
    def pointer_width(self) -> int:
        return self.get("target-pointer-width")

    @property
    def c_int_width(self) -> int:
        return self.get("target-c-int-width")

    @property
    def linker_flavor(self) -> str | None:
        return self.get("linker-flavor")

    @property
    def linker(self) -> str | None:
        return self.get("linker")

    @property
    def panic_strategy(self) -> str:
        return self.get("panic-strategy")

    @property
    def executables(self) -> bool:
        return self.get("executables")

    @property
    def is_no_std_os(self) -> bool:
        return self.os == "none"

    @property
    def rustc_target_arg(self) -> str:
        """Spelling passed to `rustc --target`: the JSON path for custom specs."""
        return str(self.source) if self.source is not None else self.name

    def describe(self) -> str:
        """Name plus short content key, for error messages naming conflicting content."""
        return f"{self.name} [{short_key(self.key)}]"

    def __str__(self) -> str:
        return self.name
