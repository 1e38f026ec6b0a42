"""Assignment plans produced by the auto-assignment strategies.

A plan is a list of bookings to add to floater planners, together with the
uncovered shifts that could not be placed and why.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from jollyplanner.domain.models import UncoveredShift
from jollyplanner.domain.timeutils import hours_between

INVERTED_HOURS_REASON = "end not after start"


@dataclass(frozen=True)
class PlannedAssignment:
    """One booking to add to a floater's planner.

    Attributes:
        floater_id: Floater receiving the booking.
        date: Day of the booking.
        site_id: Site to cover.
        start_time: "HH:MM" start.
        end_time: "HH:MM" end.
        shift_id: Uncovered shift this booking covers, if known.
    """

    floater_id: str
    date: date
    site_id: str
    start_time: str
    end_time: str
    shift_id: Optional[str] = None

    @property
    def hours(self) -> float:
        return hours_between(self.start_time, self.end_time)


@dataclass(frozen=True)
class SkippedShift:
    """An uncovered shift left out of a plan."""

    shift: UncoveredShift
    reason: str

    def __str__(self) -> str:
        return f"{self.shift.id}: {self.reason}"


@dataclass
class AssignmentPlan:
    """Result of an auto-assignment strategy.

    Attributes:
        strategy: Name of the strategy that produced the plan.
        entries: Bookings to apply, in decision order.
        skipped: Shifts that could not be placed.
        missing_shift_ids: Shifts an external optimizer reported it could not cover.
    """

    strategy: str
    entries: list[PlannedAssignment] = field(default_factory=list)
    skipped: list[SkippedShift] = field(default_factory=list)
    missing_shift_ids: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def covered_shift_ids(self) -> list[str]:
        return [e.shift_id for e in self.entries if e.shift_id is not None]

    def by_floater(self) -> dict[str, list[PlannedAssignment]]:
        """Entries grouped by floater, keeping decision order."""
        grouped: dict[str, list[PlannedAssignment]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.floater_id, []).append(entry)
        return grouped

    def hours_by_floater(self) -> dict[str, float]:
        """Hours added per floater."""
        totals: dict[str, float] = {}
        for entry in self.entries:
            totals[entry.floater_id] = totals.get(entry.floater_id, 0.0) + entry.hours
        return totals
