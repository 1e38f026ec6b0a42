"""Auto-assignment entry points.

This module provides the AutoPlanner class that detects the week's
uncovered shifts, runs the chosen assignment strategy and applies the
resulting plan to the planner store.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from jollyplanner.domain.models import Schedule, UncoveredShift, Workforce
from jollyplanner.domain.plan import AssignmentPlan
from jollyplanner.domain.timeutils import DateLike, week_dates
from jollyplanner.optimizer.contract import build_request
from jollyplanner.optimizer.delegated import DelegatedOptimizer
from jollyplanner.scheduling.coverage import CoverageGapDetector
from jollyplanner.scheduling.cpsat_assigner import CPSATAssigner
from jollyplanner.scheduling.heuristic_assigner import HeuristicAssigner
from jollyplanner.store.planner_store import PlannerStore

logger = logging.getLogger(__name__)


class Strategy(Enum):
    """Available auto-assignment strategies."""

    HEURISTIC = "heuristic"  # Greedy load balancing, ignores distance
    CPSAT = "cpsat"  # Exact model, no double booking, optional distance
    DELEGATED = "delegated"  # External reasoning service


@dataclass
class AutoAssignResult:
    """Outcome of one auto-assignment run.

    Attributes:
        strategy: Strategy used.
        week: The planned week.
        shifts: Uncovered shifts found before the run.
        plan: The plan that was applied.
        applied: Planners changed by the run.
    """

    strategy: Strategy
    week: list
    shifts: list[UncoveredShift]
    plan: AssignmentPlan
    applied: list[Schedule] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return len(self.plan.entries)

    @property
    def skipped_count(self) -> int:
        return len(self.plan.skipped) + len(self.plan.missing_shift_ids)

    def get_summary(self) -> dict:
        """Get summary statistics for the run."""
        return {
            "strategy": self.strategy.value,
            "week_start": self.week[0].isoformat() if self.week else None,
            "uncovered_shifts": len(self.shifts),
            "assigned": self.assigned_count,
            "skipped": self.skipped_count,
            "skipped_reasons": [str(s) for s in self.plan.skipped],
            "missing_shift_ids": list(self.plan.missing_shift_ids),
            "hours_by_floater": self.plan.hours_by_floater(),
            "planners_changed": len(self.applied),
        }


class AutoPlanner:
    """Runs auto-assignment strategies against a planner store.

    Example:
        >>> planner = AutoPlanner(store, workforce)
        >>> result = planner.run_heuristic_auto_assign("2024-08-07")
        >>> result.get_summary()["assigned"]
    """

    def __init__(
        self,
        store: PlannerStore,
        workforce: Workforce,
        heuristic: Optional[HeuristicAssigner] = None,
        cpsat: Optional[CPSATAssigner] = None,
        optimizer: Optional[DelegatedOptimizer] = None,
    ):
        """Initialize the auto planner.

        Args:
            store: Planner store receiving the plans.
            workforce: Rosters and absences used for gap detection.
            heuristic: Greedy assigner (default instance if None).
            cpsat: CP-SAT assigner (default instance if None).
            optimizer: Delegated optimizer; built from the environment on
                first use if None.
        """
        self.store = store
        self.workforce = workforce
        self.heuristic = heuristic or HeuristicAssigner()
        self.cpsat = cpsat or CPSATAssigner()
        self._optimizer = optimizer
        self.detector = CoverageGapDetector()

    @property
    def optimizer(self) -> DelegatedOptimizer:
        if self._optimizer is None:
            self._optimizer = DelegatedOptimizer()
        return self._optimizer

    def uncovered_shifts(self, reference: DateLike) -> list[UncoveredShift]:
        """Uncovered shifts of the week containing the reference date."""
        return self.detector.detect_for_workforce(week_dates(reference), self.workforce)

    def run(self, strategy: Strategy, reference: DateLike) -> AutoAssignResult:
        """Run a strategy to completion, blocking on the delegated call if needed."""
        if strategy == Strategy.HEURISTIC:
            return self.run_heuristic_auto_assign(reference)
        elif strategy == Strategy.CPSAT:
            return self.run_cpsat_auto_assign(reference)
        elif strategy == Strategy.DELEGATED:
            return asyncio.run(self.run_delegated_auto_assign(reference))
        raise ValueError(f"Unknown strategy: {strategy}")

    def run_heuristic_auto_assign(self, reference: DateLike) -> AutoAssignResult:
        """Cover the week's shifts with the greedy load balancer.

        Shifts with malformed hours are skipped and reported; the rest of
        the plan is applied in one batch.
        """
        week = week_dates(reference)
        shifts = self.detector.detect_for_workforce(week, self.workforce)
        plan = self.heuristic.assign(
            shifts, self.workforce.floaters, self.store.weekly_workload(week)
        )
        applied = self.store.apply_plan(plan)
        return self._finish(Strategy.HEURISTIC, week, shifts, plan, applied)

    def run_cpsat_auto_assign(self, reference: DateLike) -> AutoAssignResult:
        """Cover the week's shifts with the CP-SAT model."""
        week = week_dates(reference)
        shifts = self.detector.detect_for_workforce(week, self.workforce)
        existing = {}
        for floater in self.workforce.floaters:
            planner = self.store.planner_for_floater(floater.id)
            if planner is not None:
                existing[floater.id] = planner
        plan = self.cpsat.assign(
            shifts,
            self.workforce.floaters,
            current_workload=self.store.weekly_workload(week),
            existing=existing,
            sites=self.workforce.sites,
        )
        applied = self.store.apply_plan(plan)
        return self._finish(Strategy.CPSAT, week, shifts, plan, applied)

    async def run_delegated_auto_assign(self, reference: DateLike) -> AutoAssignResult:
        """Cover the week's shifts through the external optimizer.

        The week is reserved while the call is in flight. The plan is applied
        only if the store version is unchanged since the request was built.

        Raises:
            CredentialError: If no API key is configured (before any request).
            WeekLockedError: If the week is already reserved by another run.
            ExternalCallError: If the call fails or times out.
            SchemaError: If the answer fails validation. Nothing is applied.
            StaleStateError: If the store changed during the call. Nothing is applied.
        """
        optimizer = self.optimizer
        optimizer.check_credentials()

        week = week_dates(reference)
        shifts = self.detector.detect_for_workforce(week, self.workforce)
        request = build_request(
            week,
            shifts,
            self.workforce.floaters,
            self.workforce.sites,
            self.store.weekly_workload(week),
        )

        reservation = self.store.reserve_week(week)
        try:
            expected_version = self.store.version
            plan = await optimizer.optimize(request)
            applied = self.store.apply_plan(
                plan, expected_version=expected_version, reservation=reservation
            )
        finally:
            self.store.release(reservation)
        return self._finish(Strategy.DELEGATED, week, shifts, plan, applied)

    def _finish(
        self,
        strategy: Strategy,
        week: list,
        shifts: list[UncoveredShift],
        plan: AssignmentPlan,
        applied: list[Schedule],
    ) -> AutoAssignResult:
        result = AutoAssignResult(
            strategy=strategy, week=week, shifts=shifts, plan=plan, applied=applied
        )
        logger.info(
            "%s run for week of %s: %d uncovered, %d assigned, %d skipped",
            strategy.value, week[0].isoformat(), len(shifts),
            result.assigned_count, result.skipped_count,
        )
        return result
