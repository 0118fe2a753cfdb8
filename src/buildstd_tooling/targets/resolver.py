"""Resolve user-facing target identifiers into interned TargetDescriptors."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from buildstd_tooling.errors import MalformedTargetSpec
from buildstd_tooling.helpers import load_yaml_file
from buildstd_tooling.targets.descriptor import TargetDescriptor, normalize_target_spec

log = logging.getLogger(__name__)

BUILTIN_TARGETS_PATH = Path(__file__).parent / "data" / "builtin-targets.yaml"


def load_builtin_targets(*paths: Path) -> dict[str, dict[str, Any]]:
    """Merge built-in target tables (triple -> raw spec). Later paths override earlier ones."""
    out: dict[str, dict[str, Any]] = {}
    for p in (BUILTIN_TARGETS_PATH, *paths):
        try:
            data = load_yaml_file(p) or {}
        except (OSError, yaml.YAMLError) as e:
            raise MalformedTargetSpec("<root>", f"cannot read built-in target table: {e}", str(p)) from e
        if not isinstance(data, dict):
            raise MalformedTargetSpec("<root>", "built-in target table must be a mapping", str(p))
        for triple, spec in data.items():
            if not isinstance(spec, dict):
                raise MalformedTargetSpec(str(triple), "built-in entry must be a mapping", str(p))
            out[str(triple)] = spec
    return out


def is_custom_identifier(identifier: str, base_dir: Path) -> bool:
    """A `.json` suffix or an existing file means a custom target spec."""
    if identifier.endswith(".json"):
        return True
    p = Path(identifier)
    if not p.is_absolute():
        p = base_dir / p
    return p.is_file()


class TargetResolver:
    """Normalizes target identifiers and interns descriptors by content key.

    The first descriptor registered for a content key is returned for every later
    identifier that resolves to the same content, so a built-in triple and a custom
    file with equal content collapse to one target for the whole session.
    """

    def __init__(self, builtin_targets: dict[str, dict[str, Any]] | None = None):
        self._builtins = builtin_targets if builtin_targets is not None else load_builtin_targets()
        self._by_key: dict[str, TargetDescriptor] = {}
        self._by_identifier: dict[tuple[str, str], TargetDescriptor] = {}

    def __len__(self) -> int:
        return len(self._by_key)

    def builtin_names(self) -> list[str]:
        return sorted(self._builtins)

    def resolve(self, identifier: str, base_dir: Path | None = None) -> TargetDescriptor:
        """Resolve a triple name or JSON path. Raises MalformedTargetSpec."""
        if not identifier:
            raise MalformedTargetSpec("target", "empty target identifier")
        base = (base_dir or Path.cwd()).resolve()
        cache_key = (identifier, str(base))
        cached = self._by_identifier.get(cache_key)
        if cached is not None:
            return cached

        if is_custom_identifier(identifier, base):
            descriptor = self._resolve_custom(identifier, base)
        else:
            descriptor = self._resolve_builtin(identifier)

        interned = self._by_key.setdefault(descriptor.key, descriptor)
        if interned is not descriptor:
            log.debug(
                "target %s has the same content as %s; reusing it", identifier, interned.name
            )
        self._by_identifier[cache_key] = interned
        return interned

    def _resolve_builtin(self, triple: str) -> TargetDescriptor:
        raw = self._builtins.get(triple)
        if raw is None:
            raise MalformedTargetSpec(
                "target", f"unknown built-in target `{triple}` (pass a path to a .json spec)"
            )
        content = normalize_target_spec(raw, origin=f"built-in target {triple}")
        return TargetDescriptor.from_content(triple, content)

    def _resolve_custom(self, identifier: str, base: Path) -> TargetDescriptor:
        p = Path(identifier)
        if not p.is_absolute():
            p = base / p
        p = p.resolve()
        try:
            raw = json.loads(p.read_text())
        except FileNotFoundError as e:
            raise MalformedTargetSpec("target", "target spec file not found", str(p)) from e
        except OSError as e:
            raise MalformedTargetSpec("target", f"cannot read target spec: {e}", str(p)) from e
        except json.JSONDecodeError as e:
            raise MalformedTargetSpec(
                "<root>", f"invalid JSON at line {e.lineno} column {e.colno}", str(p)
            ) from e
        content = normalize_target_spec(raw, origin=str(p))
        return TargetDescriptor.from_content(p.stem, content, source=p)
