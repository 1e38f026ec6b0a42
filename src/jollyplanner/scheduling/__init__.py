"""Scheduling module for gap detection and floater auto-assignment."""

from jollyplanner.scheduling.auto_planner import AutoAssignResult, AutoPlanner, Strategy
from jollyplanner.scheduling.coverage import (
    CoverageGapDetector,
    absent_employees,
    detect_uncovered_shifts,
)
from jollyplanner.scheduling.cpsat_assigner import CPSATAssigner, CPSATResult
from jollyplanner.scheduling.heuristic_assigner import HeuristicAssigner

__all__ = [
    "AutoAssignResult",
    "AutoPlanner",
    "CPSATAssigner",
    "CPSATResult",
    "CoverageGapDetector",
    "HeuristicAssigner",
    "Strategy",
    "absent_employees",
    "detect_uncovered_shifts",
]
