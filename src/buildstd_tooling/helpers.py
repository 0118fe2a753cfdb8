"""Shared helpers for buildstd_tooling (text, yaml load, hashing, path).

Used by targets, stdlib, sysroot, graph, fingerprint, and the CLI.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

# --- Text ---


def is_crate_name(s: str) -> bool:
    """Non-empty, starts with a letter or '_', then letters, digits, '_' or '-'."""
    if not s:
        return False
    if s[0] != "_" and not s[0].isalpha():
        return False
    return all(c.isalnum() or c in "_-" for c in s)


def to_crate_ident(s: str) -> str:
    """Crate name as rustc sees it: '-' becomes '_' (proc-macro -> proc_macro)."""
    return s.replace("-", "_")


def short_key(key: str, length: int = 8) -> str:
    """First `length` hex chars of a content key, for messages and directory suffixes."""
    return key[:length]


# --- Yaml / file ---


def load_yaml_file(p: Path) -> Any:
    """Load a YAML document from path. Empty files load as None."""
    with p.open() as f:
        return yaml.safe_load(f)


# --- Hashing ---


def canonical_json(value: Any) -> str:
    """Stable JSON encoding: sorted keys, no whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def content_digest(value: Any) -> str:
    """sha256 hex digest of the canonical JSON encoding of value."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def file_digest(p: Path) -> str | None:
    """sha256 hex digest of a file's bytes, or None when the file does not exist."""
    try:
        data = p.read_bytes()
    except FileNotFoundError:
        return None
    return hashlib.sha256(data).hexdigest()


# --- Path ---


def resolve_relative(base_dir: Path, value: str | Path) -> Path:
    """Resolve value against base_dir unless it is already absolute."""
    p = Path(value)
    return p if p.is_absolute() else (base_dir / p).resolve()


def profile_dir_name(profile_name: str) -> str:
    """Cargo's output directory name for a profile (dev -> debug)."""
    return "debug" if profile_name in ("dev", "test") else profile_name
