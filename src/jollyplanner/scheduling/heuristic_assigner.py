"""Greedy load-balancing auto-assigner.

This module implements the fast assignment strategy:
1. Start from each floater's hours already booked this week
2. Give every uncovered shift, in detection order, to the least loaded floater
3. Add the shift's duration to that floater's load before the next pick

Travel distance is ignored; see the CP-SAT and delegated strategies for that.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from jollyplanner.domain.models import Employee, UncoveredShift
from jollyplanner.domain.plan import (
    INVERTED_HOURS_REASON,
    AssignmentPlan,
    PlannedAssignment,
    SkippedShift,
)
from jollyplanner.domain.timeutils import duration_hours, parse_hours_range, split_hours_range
from jollyplanner.errors import ParseError

logger = logging.getLogger(__name__)

STRATEGY_NAME = "heuristic"


@dataclass
class WorkloadState:
    """Tracks booked hours per floater during one assignment run."""

    hours: dict[str, float] = field(default_factory=dict)

    def get(self, floater_id: str) -> float:
        return self.hours.get(floater_id, 0.0)

    def add(self, floater_id: str, hours: float) -> None:
        self.hours[floater_id] = self.get(floater_id) + hours

    def score(self, floater_id: str) -> float:
        """Higher is less loaded. The +1 keeps idle floaters finite."""
        return 1 / (self.get(floater_id) + 1)


class HeuristicAssigner:
    """Deterministic greedy assigner.

    Each shift goes to the floater with the strictly highest score
    1 / (workload + 1). Ties go to the floater listed first in the roster,
    so the same input always yields the same plan.

    Example:
        >>> plan = HeuristicAssigner().assign(shifts, floaters, {"emp-3": 8.0})
        >>> [e.floater_id for e in plan.entries]
    """

    def assign(
        self,
        shifts: Iterable[UncoveredShift],
        floaters: Iterable[Employee],
        current_workload: Optional[Mapping[str, float]] = None,
    ) -> AssignmentPlan:
        """Build an assignment plan.

        Args:
            shifts: Uncovered shifts in detector order.
            floaters: Candidate floaters in roster order.
            current_workload: Hours already booked this week per floater id.

        Returns:
            AssignmentPlan. Shifts with malformed or inverted working hours are listed in
            plan.skipped and left out of the entries.
        """
        floaters = list(floaters)
        plan = AssignmentPlan(strategy=STRATEGY_NAME)

        state = WorkloadState()
        for floater in floaters:
            state.add(floater.id, float((current_workload or {}).get(floater.id, 0.0)))

        for shift in shifts:
            if not floaters:
                plan.skipped.append(SkippedShift(shift, "no floaters available"))
                continue

            try:
                start, end = parse_hours_range(shift.working_hours)
                start_time, end_time = split_hours_range(shift.working_hours)
            except ParseError as e:
                logger.debug("Skipping shift %s: %s", shift.id, e)
                plan.skipped.append(SkippedShift(shift, str(e)))
                continue
            if end <= start:
                logger.debug("Skipping shift %s: end not after start", shift.id)
                plan.skipped.append(SkippedShift(shift, INVERTED_HOURS_REASON))
                continue

            chosen = self._pick(floaters, state)
            plan.entries.append(
                PlannedAssignment(
                    floater_id=chosen.id,
                    date=shift.date,
                    site_id=shift.site_id,
                    start_time=start_time,
                    end_time=end_time,
                    shift_id=shift.id,
                )
            )
            state.add(chosen.id, duration_hours(start, end))

        if plan.skipped:
            logger.info(
                "Heuristic plan: %d assigned, %d skipped", len(plan.entries), len(plan.skipped)
            )
        return plan

    def _pick(self, floaters: list[Employee], state: WorkloadState) -> Employee:
        """Floater with the strictly highest score; first in roster on ties."""
        best = floaters[0]
        best_score = state.score(best.id)
        for floater in floaters[1:]:
            score = state.score(floater.id)
            if score > best_score:
                best = floater
                best_score = score
        return best
