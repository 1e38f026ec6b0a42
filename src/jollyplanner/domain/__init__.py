"""Domain models and calendar helpers for floater planning."""

from jollyplanner.domain.distance import DistanceProvider, StaticDistanceTable
from jollyplanner.domain.models import (
    UNBOUND,
    AbsenceStatus,
    AbsenceType,
    Assignment,
    Bound,
    ContractType,
    Employee,
    LeaveRequest,
    PlannerBinding,
    Role,
    Schedule,
    SicknessRecord,
    SiteAssignment,
    SiteStatus,
    Unbound,
    UncoveredShift,
    WorkSite,
    Workforce,
)
from jollyplanner.domain.plan import AssignmentPlan, PlannedAssignment, SkippedShift
from jollyplanner.domain.timeutils import (
    WEEKDAY_NAMES,
    date_key,
    duration_hours,
    hours_between,
    intervals_overlap,
    parse_hours_range,
    parse_time,
    split_hours_range,
    week_dates,
    weekday_name,
)

__all__ = [
    # Models
    "AbsenceStatus",
    "AbsenceType",
    "Assignment",
    "Bound",
    "ContractType",
    "Employee",
    "LeaveRequest",
    "PlannerBinding",
    "Role",
    "Schedule",
    "SicknessRecord",
    "SiteAssignment",
    "SiteStatus",
    "UNBOUND",
    "Unbound",
    "UncoveredShift",
    "WorkSite",
    "Workforce",
    # Plans
    "AssignmentPlan",
    "PlannedAssignment",
    "SkippedShift",
    # Distance
    "DistanceProvider",
    "StaticDistanceTable",
    # Time helpers
    "WEEKDAY_NAMES",
    "date_key",
    "duration_hours",
    "hours_between",
    "intervals_overlap",
    "parse_hours_range",
    "parse_time",
    "split_hours_range",
    "week_dates",
    "weekday_name",
]
