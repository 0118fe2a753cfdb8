"""Keep std package resolution away from the user's lock state.

Resolving the std family reads a bundled snapshot. It must not write the user's lock
file and must not show the resolver's "Updating"/"Locking" progress, which users read
as "this build changed my dependencies".
"""

from __future__ import annotations

import logging
from pathlib import Path

from buildstd_tooling.errors import LockfileIsolationError
from buildstd_tooling.helpers import file_digest
from buildstd_tooling.progress import RESOLVER_STATUSES, ProgressEvent, ProgressReporter
from buildstd_tooling.stdlib.package_set import StdPackageSet, load_std_package_set

log = logging.getLogger(__name__)


class LockfileIsolationGuard:
    """Context manager asserting the lock file and resolver progress are left untouched."""

    def __init__(self, lockfile: Path | None, reporter: ProgressReporter | None = None):
        self.lockfile = lockfile
        self.reporter = reporter
        self._before: str | None = None

    def _reject(self, event: ProgressEvent) -> None:
        if event.status in RESOLVER_STATUSES:
            msg = f"std package resolution tried to report `{event.status} {event.message}`"
            raise LockfileIsolationError(msg)

    def __enter__(self) -> LockfileIsolationGuard:
        if self.lockfile is not None:
            self._before = file_digest(self.lockfile)
        if self.reporter is not None:
            self.reporter.add_filter(self._reject)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.reporter is not None:
            self.reporter.remove_filter(self._reject)
        if self.lockfile is None or exc_type is not None:
            return
        after = file_digest(self.lockfile)
        if after != self._before:
            if self._before is None:
                change = "created"
            elif after is None:
                change = "deleted"
            else:
                change = "modified"
            msg = f"lock file {self.lockfile} was {change} while resolving std packages"
            raise LockfileIsolationError(msg)


def resolve_std_packages(
    std_lock: Path | None,
    lockfile: Path | None,
    reporter: ProgressReporter | None = None,
) -> StdPackageSet:
    """Load the pinned std snapshot under the isolation guard. No network, no writes."""
    with LockfileIsolationGuard(lockfile, reporter):
        package_set = load_std_package_set(std_lock)
    log.debug("std packages resolved from %s without touching %s", package_set.path, lockfile)
    return package_set
