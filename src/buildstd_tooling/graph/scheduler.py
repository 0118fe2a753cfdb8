"""Run a UnitGraph on a thread pool, dependencies first.

A unit is submitted once every dependency finished successfully. A failed unit marks its
transitive dependents as skipped; running and independent units carry on.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

from buildstd_tooling.errors import BuildStdError
from buildstd_tooling.graph.units import UnitGraph

log = logging.getLogger(__name__)

DONE = "done"
FRESH = "fresh"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class UnitOutcome:
    unit_id: int
    status: str
    result: Any = None
    error: BuildStdError | None = None

    @property
    def ok(self) -> bool:
        return self.status in (DONE, FRESH)


@dataclass
class ScheduleResult:
    outcomes: dict[int, UnitOutcome] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes.values())

    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes.values() if o.status == FAILED]

    def skipped(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes.values() if o.status == SKIPPED]

    def status_of(self, unit_id: int) -> str | None:
        o = self.outcomes.get(unit_id)
        return o.status if o is not None else None


# run_unit returns (status, result) where status is DONE or FRESH.
RunUnit = Callable[[int], tuple[str, Any]]


def default_jobs() -> int:
    return os.cpu_count() or 1


class Scheduler:
    def __init__(self, graph: UnitGraph, run_unit: RunUnit, jobs: int | None = None):
        self.graph = graph
        self.run_unit = run_unit
        self.jobs = jobs if jobs and jobs > 0 else default_jobs()

    def run(self) -> ScheduleResult:
        """Execute every unit. Never raises BuildStdError; failures land in the result."""
        # Raises PlanningError on a cycle before anything runs.
        order = self.graph.topological_order()
        result = ScheduleResult()
        waiting = {i: set(self.graph.deps(i)) for i in order}
        running: dict[Future, int] = {}

        def skip_dependents(unit_id: int) -> None:
            for d in sorted(self.graph.transitive_dependents(unit_id)):
                if d not in result.outcomes:
                    result.outcomes[d] = UnitOutcome(d, SKIPPED)
                    waiting.pop(d, None)
                    log.debug("skipping %s", self.graph[d].describe())

        with ThreadPoolExecutor(max_workers=self.jobs) as pool:
            while waiting or running:
                ready = [i for i in order if i in waiting and not waiting[i]]
                for i in ready:
                    del waiting[i]
                    running[pool.submit(self.run_unit, i)] = i
                if not running:
                    # Everything left waits on a unit that will never finish.
                    for i in list(waiting):
                        result.outcomes[i] = UnitOutcome(i, SKIPPED)
                    waiting.clear()
                    break
                finished, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for fut in finished:
                    i = running.pop(fut)
                    try:
                        status, value = fut.result()
                    except BuildStdError as e:
                        log.debug("%s failed: %s", self.graph[i].describe(), e)
                        result.outcomes[i] = UnitOutcome(i, FAILED, error=e)
                        skip_dependents(i)
                        continue
                    result.outcomes[i] = UnitOutcome(i, status, result=value)
                    for d in self.graph.dependents(i):
                        if d in waiting:
                            waiting[d].discard(i)
        return result
