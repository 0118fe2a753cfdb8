"""Cargo-style progress lines on stderr, with every event kept for inspection."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TextIO

# Statuses emitted by ordinary dependency resolution; std resolution must never emit them.
RESOLVER_STATUSES = frozenset({"Updating", "Locking", "Downloading", "Adding"})


@dataclass(frozen=True)
class ProgressEvent:
    status: str
    message: str

    def render(self) -> str:
        if self.status in ("error", "warning"):
            return f"{self.status}: {self.message}"
        return f"{self.status:>12} {self.message}"


EventFilter = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Thread-safe; the scheduler reports from worker threads."""

    def __init__(self, stream: TextIO | None = None, quiet: bool = False):
        self._stream = stream
        self.quiet = quiet
        self.events: list[ProgressEvent] = []
        self._filters: list[EventFilter] = []
        self._lock = threading.Lock()

    def add_filter(self, f: EventFilter) -> None:
        with self._lock:
            self._filters.append(f)

    def remove_filter(self, f: EventFilter) -> None:
        with self._lock:
            if f in self._filters:
                self._filters.remove(f)

    def emit(self, status: str, message: str) -> None:
        event = ProgressEvent(status, message)
        with self._lock:
            filters = list(self._filters)
        for f in filters:
            f(event)
        with self._lock:
            self.events.append(event)
            if not self.quiet:
                print(event.render(), file=self._stream or sys.stderr)

    def statuses(self) -> list[str]:
        with self._lock:
            return [e.status for e in self.events]
