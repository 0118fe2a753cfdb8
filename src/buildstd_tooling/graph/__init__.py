"""Unit graph, std/user grafting, and the parallel scheduler."""

from .graft import Grafter, std_crate_types, std_unit_flags, verify_target_isolation
from .scheduler import ScheduleResult, Scheduler, UnitOutcome
from .units import (
    BUILD_SCRIPT_UNIT,
    STD_UNIT,
    USER_UNIT,
    BuildUnit,
    CompileProfile,
    UnitGraph,
)

__all__ = [
    "BUILD_SCRIPT_UNIT",
    "STD_UNIT",
    "USER_UNIT",
    "BuildUnit",
    "CompileProfile",
    "Grafter",
    "ScheduleResult",
    "Scheduler",
    "UnitGraph",
    "UnitOutcome",
    "std_crate_types",
    "std_unit_flags",
    "verify_target_isolation",
]
