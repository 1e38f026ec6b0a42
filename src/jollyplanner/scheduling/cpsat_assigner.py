"""OR-Tools CP-SAT assigner for exact floater assignment.

This module provides a constraint programming approach to covering the
week's uncovered shifts. Unlike the greedy heuristic it never double-books a
floater and it can weigh travel distance against workload balance.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from ortools.sat.python import cp_model

from jollyplanner.config import CPSATConfig
from jollyplanner.domain.distance import DistanceProvider
from jollyplanner.domain.models import Employee, Schedule, UncoveredShift, WorkSite
from jollyplanner.domain.plan import (
    INVERTED_HOURS_REASON,
    AssignmentPlan,
    PlannedAssignment,
    SkippedShift,
)
from jollyplanner.domain.timeutils import format_minutes, intervals_overlap, parse_hours_range
from jollyplanner.errors import ParseError

logger = logging.getLogger(__name__)

STRATEGY_NAME = "cpsat"


@dataclass
class CPSATResult:
    """Result from the CP-SAT assigner.

    Attributes:
        plan: The assignment plan (empty if no solution was found).
        status: Solver status (OPTIMAL, FEASIBLE, etc.).
        objective_value: Final objective value.
        solve_time_seconds: Wall time spent in the solver.
    """

    plan: AssignmentPlan
    status: str
    objective_value: int = 0
    solve_time_seconds: float = 0.0

    @property
    def is_optimal(self) -> bool:
        return self.status == "OPTIMAL"

    @property
    def is_feasible(self) -> bool:
        return self.status in ("OPTIMAL", "FEASIBLE")


@dataclass(frozen=True)
class _ParsedShift:
    shift: UncoveredShift
    start: int
    end: int

    @property
    def minutes(self) -> int:
        return max(0, self.end - self.start)


class CPSATAssigner:
    """Exact assigner built on the CP-SAT solver.

    Model:
        x[s, f] = 1 if shift s goes to floater f.
        u[s] = 1 if shift s stays uncovered.
        sum_f x[s, f] + u[s] == 1 for every shift.
        A floater never holds two overlapping bookings on one date, counting
        the bookings already in its planner.

    Objective (minimised):
        unassigned_penalty * sum(u)
        + load_weight * max weekly minutes over floaters
        + distance_weight * total travel in tenths of a kilometre

    Pairs with an unknown distance add no travel cost.
    """

    def __init__(
        self,
        config: Optional[CPSATConfig] = None,
        distance_provider: Optional[DistanceProvider] = None,
    ):
        self.config = config or CPSATConfig()
        self.distance_provider = distance_provider

    def assign(
        self,
        shifts: Iterable[UncoveredShift],
        floaters: Iterable[Employee],
        current_workload: Optional[Mapping[str, float]] = None,
        existing: Optional[Mapping[str, Schedule]] = None,
        sites: Iterable[WorkSite] = (),
    ) -> AssignmentPlan:
        """Build an assignment plan. See solve() for the arguments."""
        return self.solve(shifts, floaters, current_workload, existing, sites).plan

    def solve(
        self,
        shifts: Iterable[UncoveredShift],
        floaters: Iterable[Employee],
        current_workload: Optional[Mapping[str, float]] = None,
        existing: Optional[Mapping[str, Schedule]] = None,
        sites: Iterable[WorkSite] = (),
    ) -> CPSATResult:
        """Solve the assignment model.

        Args:
            shifts: Uncovered shifts in detector order.
            floaters: Candidate floaters in roster order.
            current_workload: Hours already booked this week per floater id.
            existing: Current planner per floater id, for overlap checks.
            sites: Sites, used to look up addresses for travel distance.

        Returns:
            CPSATResult with the plan and solver statistics.
        """
        floaters = list(floaters)
        current_workload = current_workload or {}
        existing = existing or {}
        site_addresses = {s.id: s.address for s in sites}
        plan = AssignmentPlan(strategy=STRATEGY_NAME)

        parsed: list[_ParsedShift] = []
        for shift in shifts:
            try:
                start, end = parse_hours_range(shift.working_hours)
            except ParseError as e:
                logger.debug("Skipping shift %s: %s", shift.id, e)
                plan.skipped.append(SkippedShift(shift, str(e)))
                continue
            if end <= start:
                logger.debug("Skipping shift %s: end not after start", shift.id)
                plan.skipped.append(SkippedShift(shift, INVERTED_HOURS_REASON))
                continue
            parsed.append(_ParsedShift(shift, start, end))

        if not parsed:
            return CPSATResult(plan=plan, status="OPTIMAL")
        if not floaters:
            plan.skipped.extend(SkippedShift(p.shift, "no floaters available") for p in parsed)
            return CPSATResult(plan=plan, status="INFEASIBLE")

        model = cp_model.CpModel()

        # Decision variables: x[shift_idx][floater_id]
        x: dict[int, dict[str, cp_model.IntVar]] = {}
        unassigned: dict[int, cp_model.IntVar] = {}
        for s_idx, item in enumerate(parsed):
            x[s_idx] = {}
            for floater in floaters:
                x[s_idx][floater.id] = model.NewBoolVar(f"x_{s_idx}_{floater.id}")
            unassigned[s_idx] = model.NewBoolVar(f"u_{s_idx}")
            model.Add(sum(x[s_idx].values()) + unassigned[s_idx] == 1)

        # No double booking, among new shifts and against existing bookings
        for floater in floaters:
            planner = existing.get(floater.id)
            for s_idx, item in enumerate(parsed):
                if planner is not None and self._clashes_with_planner(item, planner):
                    model.Add(x[s_idx][floater.id] == 0)
                for o_idx in range(s_idx + 1, len(parsed)):
                    other = parsed[o_idx]
                    if other.shift.date != item.shift.date:
                        continue
                    if intervals_overlap(item.start, item.end, other.start, other.end):
                        model.AddAtMostOne([x[s_idx][floater.id], x[o_idx][floater.id]])

        # Weekly load per floater, in minutes
        horizon = sum(p.minutes for p in parsed)
        base_minutes = {
            f.id: int(round(float(current_workload.get(f.id, 0.0)) * 60)) for f in floaters
        }
        max_load = model.NewIntVar(0, max(base_minutes.values()) + horizon, "max_load")
        for floater in floaters:
            load = base_minutes[floater.id] + sum(
                p.minutes * x[s_idx][floater.id] for s_idx, p in enumerate(parsed)
            )
            model.Add(max_load >= load)

        # Travel cost in tenths of a kilometre
        travel_terms = []
        if self.distance_provider is not None:
            for s_idx, item in enumerate(parsed):
                destination = site_addresses.get(item.shift.site_id)
                if not destination:
                    continue
                for floater in floaters:
                    if not floater.address:
                        continue
                    km = self.distance_provider.distance_km(floater.address, destination)
                    if km is None:
                        continue
                    travel_terms.append(int(round(km * 10)) * x[s_idx][floater.id])

        objective_terms = [
            self.config.unassigned_penalty * sum(unassigned.values()),
            self.config.load_weight * max_load,
        ]
        if travel_terms:
            objective_terms.append(self.config.distance_weight * sum(travel_terms))
        model.Minimize(sum(objective_terms))

        # Solve
        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.config.time_limit_seconds
        if self.config.num_workers > 0:
            solver.parameters.num_workers = self.config.num_workers

        status = solver.Solve(model)

        status_map = {
            cp_model.OPTIMAL: "OPTIMAL",
            cp_model.FEASIBLE: "FEASIBLE",
            cp_model.INFEASIBLE: "INFEASIBLE",
            cp_model.MODEL_INVALID: "MODEL_INVALID",
            cp_model.UNKNOWN: "UNKNOWN",
        }
        status_str = status_map.get(status, "UNKNOWN")

        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.warning("CP-SAT found no solution (%s)", status_str)
            plan.skipped.extend(
                SkippedShift(p.shift, f"solver status {status_str}") for p in parsed
            )
            return CPSATResult(
                plan=plan,
                status=status_str,
                solve_time_seconds=solver.WallTime(),
            )

        self._extract_plan(solver, parsed, floaters, x, unassigned, plan)
        logger.info(
            "CP-SAT plan (%s): %d assigned, %d skipped in %.2fs",
            status_str, len(plan.entries), len(plan.skipped), solver.WallTime(),
        )
        return CPSATResult(
            plan=plan,
            status=status_str,
            objective_value=int(solver.ObjectiveValue()),
            solve_time_seconds=solver.WallTime(),
        )

    def _extract_plan(
        self,
        solver: cp_model.CpSolver,
        parsed: list[_ParsedShift],
        floaters: list[Employee],
        x: dict[int, dict[str, cp_model.IntVar]],
        unassigned: dict[int, cp_model.IntVar],
        plan: AssignmentPlan,
    ) -> None:
        """Read the chosen floater of every shift, in shift order."""
        for s_idx, item in enumerate(parsed):
            if solver.Value(unassigned[s_idx]) == 1:
                plan.skipped.append(
                    SkippedShift(item.shift, "no floater free for this time slot")
                )
                continue
            for floater in floaters:
                if solver.Value(x[s_idx][floater.id]) == 1:
                    plan.entries.append(
                        PlannedAssignment(
                            floater_id=floater.id,
                            date=item.shift.date,
                            site_id=item.shift.site_id,
                            start_time=format_minutes(item.start),
                            end_time=format_minutes(item.end),
                            shift_id=item.shift.id,
                        )
                    )
                    break

    def _clashes_with_planner(self, item: _ParsedShift, planner: Schedule) -> bool:
        for booking in planner.day(item.shift.date):
            try:
                start, end = booking.minutes_range()
            except ParseError:
                continue
            if intervals_overlap(item.start, item.end, start, end):
                return True
        return False
