"""Error taxonomy for build-std sessions.

Planning errors (target specs, std requests, the bundled snapshot, isolation) abort the
session before anything is scheduled. UnitFailed is raised per unit at execution time and
only affects that unit's dependents.
"""

from __future__ import annotations


class BuildStdError(Exception):
    """Base class for every error reported by buildstd_tooling."""


class ConfigError(BuildStdError):
    """Workspace config is missing or has an invalid shape."""


class MalformedTargetSpec(BuildStdError):
    """Custom target content is invalid. Carries the offending field."""

    def __init__(self, field: str, reason: str, origin: str | None = None):
        self.field = field
        self.reason = reason
        self.origin = origin
        where = f" in {origin}" if origin else ""
        super().__init__(f"malformed target spec{where}: field `{field}`: {reason}")


class InconsistentStdRequest(BuildStdError):
    """A reachable package's std needs cannot be satisfied by the planned targets."""

    def __init__(self, message: str, package: str | None = None, target: str | None = None):
        self.package = package
        self.target = target
        super().__init__(message)


class ForcedTargetConflict(InconsistentStdRequest):
    """A forced target cannot be folded into the sysroot plan."""

    def __init__(self, message: str, package: str, target: str, other: str | None = None):
        self.other = other
        super().__init__(message, package=package, target=target)


class MissingStdManifest(BuildStdError):
    """The bundled std package snapshot is absent or corrupt."""

    def __init__(self, path: object, reason: str):
        self.path = path
        super().__init__(f"std package snapshot {path}: {reason}")


class LockfileIsolationError(BuildStdError):
    """Resolving the std package set touched user lock state or emitted resolver progress."""


class PlanningError(BuildStdError):
    """Internal planning bug, e.g. two units with the same key but different flags."""


class ArtifactFilterError(BuildStdError):
    """Filtering left no static or metadata artifact for a std unit."""


class UnitFailed(BuildStdError):
    """The compiler driver reported a failure for one build unit."""

    def __init__(self, unit: str, target: str, detail: str = ""):
        self.unit = unit
        self.target = target
        self.detail = detail
        msg = f"could not compile `{unit}` for {target}"
        if detail:
            msg += f"\n{detail.rstrip()}"
        super().__init__(msg)
