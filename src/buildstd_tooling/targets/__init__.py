"""Target descriptor resolution: built-in triples and custom JSON specs."""

from .descriptor import TargetDescriptor, normalize_target_spec
from .host import detect_host_triple, rustc_sysroot, rustc_version
from .resolver import BUILTIN_TARGETS_PATH, TargetResolver, load_builtin_targets

__all__ = [
    "BUILTIN_TARGETS_PATH",
    "TargetDescriptor",
    "TargetResolver",
    "detect_host_triple",
    "load_builtin_targets",
    "normalize_target_spec",
    "rustc_sysroot",
    "rustc_version",
]
