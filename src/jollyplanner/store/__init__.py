"""Schedule persistence and the planner store."""

from jollyplanner.store.planner_store import (
    PlannerStore,
    WeekReservation,
    derived_planner_id,
)
from jollyplanner.store.repository import (
    InMemoryScheduleRepository,
    JsonFileScheduleRepository,
    ScheduleRepository,
)

__all__ = [
    "InMemoryScheduleRepository",
    "JsonFileScheduleRepository",
    "PlannerStore",
    "ScheduleRepository",
    "WeekReservation",
    "derived_planner_id",
]
