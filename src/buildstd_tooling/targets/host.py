"""Host toolchain queries: host triple (rustc -vV, with a platform fallback), version, sysroot."""

from __future__ import annotations

import logging
import os
import platform
import subprocess
import sys

log = logging.getLogger(__name__)

# (sys.platform prefix, platform.machine()) -> triple
_PLATFORM_TRIPLES: dict[tuple[str, str], str] = {
    ("linux", "x86_64"): "x86_64-unknown-linux-gnu",
    ("linux", "amd64"): "x86_64-unknown-linux-gnu",
    ("linux", "aarch64"): "aarch64-unknown-linux-gnu",
    ("linux", "arm64"): "aarch64-unknown-linux-gnu",
    ("darwin", "arm64"): "aarch64-apple-darwin",
    ("darwin", "x86_64"): "x86_64-apple-darwin",
    ("win32", "amd64"): "x86_64-pc-windows-msvc",
    ("win32", "x86_64"): "x86_64-pc-windows-msvc",
}


def _platform_triple() -> str:
    machine = platform.machine().lower()
    for (prefix, arch), triple in _PLATFORM_TRIPLES.items():
        if sys.platform.startswith(prefix) and machine == arch:
            return triple
    return "x86_64-unknown-linux-gnu"


def detect_host_triple(rustc: str = "rustc") -> str:
    """Host triple: $BUILDSTD_HOST, else `rustc -vV` host line, else platform mapping."""
    override = os.environ.get("BUILDSTD_HOST")
    if override:
        return override
    try:
        r = subprocess.run([rustc, "-vV"], capture_output=True, text=True)
    except OSError as e:
        log.debug("rustc -vV failed (%s); using platform mapping", e)
        return _platform_triple()
    if r.returncode == 0:
        for line in r.stdout.splitlines():
            if line.startswith("host:"):
                return line.split(":", 1)[1].strip()
    log.debug("rustc -vV gave no host line; using platform mapping")
    return _platform_triple()


def rustc_sysroot(rustc: str = "rustc") -> str | None:
    """`rustc --print sysroot`, or None when rustc is unavailable."""
    try:
        r = subprocess.run([rustc, "--print", "sysroot"], capture_output=True, text=True)
    except OSError as e:
        log.debug("rustc --print sysroot failed: %s", e)
        return None
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None


def rustc_version(rustc: str = "rustc") -> str | None:
    """Full `rustc -vV` output (release, commit hash, LLVM version), or None when unavailable."""
    try:
        r = subprocess.run([rustc, "-vV"], capture_output=True, text=True)
    except OSError as e:
        log.debug("rustc -vV failed: %s", e)
        return None
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None
