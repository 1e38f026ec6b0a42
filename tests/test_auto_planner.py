"""Tests for the auto-assignment entry points."""

import asyncio
import json
from dataclasses import replace
from datetime import date

import pytest

from jollyplanner.cli import create_sample_distances, create_sample_workforce
from jollyplanner.config import CPSATConfig, OptimizerConfig
from jollyplanner.domain.timeutils import week_dates
from jollyplanner.errors import CredentialError, SchemaError, StaleStateError
from jollyplanner.optimizer.delegated import DelegatedOptimizer
from jollyplanner.optimizer.transport import OptimizerTransport
from jollyplanner.scheduling.auto_planner import AutoPlanner, Strategy
from jollyplanner.scheduling.cpsat_assigner import CPSATAssigner
from jollyplanner.store.planner_store import PlannerStore
from jollyplanner.store.repository import InMemoryScheduleRepository
from jollyplanner.validation.conflicts import detect_conflicts

WEEK_START = date(2024, 8, 5)
WEEK = week_dates(WEEK_START)

ANSWER = {
    "assignments": {
        "emp-3": {
            "2024-08-06": [
                {
                    "shiftId": "2024-08-06/site-1/emp-2",
                    "siteId": "site-1",
                    "startTime": "14:00",
                    "endTime": "18:00",
                }
            ],
            "2024-08-07": [
                {
                    "shiftId": "2024-08-07/site-1/emp-1",
                    "siteId": "site-1",
                    "startTime": "08:00",
                    "endTime": "12:00",
                }
            ],
        },
        "emp-6": {
            "2024-08-08": [
                {
                    "shiftId": "2024-08-08/site-1/emp-2",
                    "siteId": "site-1",
                    "startTime": "14:00",
                    "endTime": "18:00",
                }
            ]
        },
    },
    "unassigned": [],
}


class ScriptedTransport(OptimizerTransport):
    """Transport returning a canned answer, running a hook while "in flight"."""

    def __init__(self, text, during_call=None):
        self.text = text
        self.during_call = during_call
        self.calls = 0

    async def complete(self, prompt):
        self.calls += 1
        if self.during_call is not None:
            self.during_call()
        return self.text


@pytest.fixture
def workforce():
    return create_sample_workforce()


@pytest.fixture
def store(workforce):
    return PlannerStore(InMemoryScheduleRepository(), workforce.employees)


def _delegated(text, during_call=None, api_key="test-key"):
    config = OptimizerConfig(api_key=api_key)
    return DelegatedOptimizer(config, ScriptedTransport(text, during_call))


def _booking_count(store):
    return sum(p.assignment_count for p in store.planners())


class TestAutoPlanner:
    """Tests for AutoPlanner runs on the sample workforce."""

    def test_uncovered_shifts(self, store, workforce):
        """Test the sample week has three uncovered shifts."""
        shifts = AutoPlanner(store, workforce).uncovered_shifts("2024-08-07")
        assert [s.id for s in shifts] == [
            "2024-08-06/site-1/emp-2",
            "2024-08-08/site-1/emp-2",
            "2024-08-07/site-1/emp-1",
        ]

    def test_heuristic_run(self, store, workforce):
        """Test the heuristic alternates floaters and applies the plan."""
        result = AutoPlanner(store, workforce).run_heuristic_auto_assign(WEEK_START)

        assert result.assigned_count == 3
        assert result.skipped_count == 0
        assert [e.floater_id for e in result.plan.entries] == ["emp-3", "emp-6", "emp-3"]
        assert store.weekly_workload(WEEK) == {"emp-3": 8.0, "emp-6": 4.0}
        assert store.version == 1

    def test_heuristic_counts_existing_bookings(self, store, workforce):
        store.add_assignment("jolly-emp-3", date(2024, 8, 5), "site-2", "07:00", "19:00")

        result = AutoPlanner(store, workforce).run(Strategy.HEURISTIC, WEEK_START)

        assert [e.floater_id for e in result.plan.entries] == ["emp-6", "emp-6", "emp-6"]

    def test_summary(self, store, workforce):
        summary = AutoPlanner(store, workforce).run_heuristic_auto_assign(WEEK_START).get_summary()
        assert summary["strategy"] == "heuristic"
        assert summary["week_start"] == "2024-08-05"
        assert summary["uncovered_shifts"] == 3
        assert summary["assigned"] == 3
        assert summary["hours_by_floater"] == {"emp-3": 8.0, "emp-6": 4.0}
        assert summary["planners_changed"] == 2

    def test_cpsat_run(self, store, workforce):
        """Test CP-SAT covers every shift without creating conflicts."""
        cpsat = CPSATAssigner(CPSATConfig(time_limit_seconds=10.0), create_sample_distances())

        result = AutoPlanner(store, workforce, cpsat=cpsat).run(Strategy.CPSAT, WEEK_START)

        assert result.assigned_count == 3
        assert detect_conflicts(store.planners()) == set()
        hours = store.weekly_workload(WEEK)
        assert sorted(hours.values()) == [4.0, 8.0]

    @pytest.mark.parametrize("strategy", [Strategy.HEURISTIC, Strategy.CPSAT])
    def test_inverted_recurring_hours_skipped(self, store, workforce, strategy):
        """Test an overnight recurring row is skipped and the valid shift is still applied."""
        site = workforce.sites[0]
        site.assignments[1] = replace(site.assignments[1], working_hours="18:00 - 08:00")
        cpsat = CPSATAssigner(CPSATConfig(time_limit_seconds=10.0))

        result = AutoPlanner(store, workforce, cpsat=cpsat).run(strategy, WEEK_START)

        assert result.assigned_count == 1
        assert result.skipped_count == 2
        assert {s.reason for s in result.plan.skipped} == {"end not after start"}
        assert result.plan.entries[0].shift_id == "2024-08-07/site-1/emp-1"
        assert sum(store.weekly_workload(WEEK).values()) == 4.0

    def test_week_with_no_absences(self, store, workforce):
        result = AutoPlanner(store, workforce).run_heuristic_auto_assign(date(2024, 9, 2))
        assert result.assigned_count == 0
        assert store.version == 0


class TestDelegatedRun:
    """Tests for the delegated strategy end to end, without network access."""

    def test_valid_answer_applied(self, store, workforce):
        planner = AutoPlanner(store, workforce, optimizer=_delegated(json.dumps(ANSWER)))

        result = planner.run(Strategy.DELEGATED, WEEK_START)

        assert result.assigned_count == 3
        assert store.weekly_workload(WEEK) == {"emp-3": 8.0, "emp-6": 4.0}
        assert not store.is_locked(WEEK_START)

    def test_week_locked_while_in_flight(self, store, workforce):
        seen = []
        optimizer = _delegated(
            json.dumps(ANSWER), during_call=lambda: seen.append(store.is_locked(WEEK_START))
        )

        asyncio.run(AutoPlanner(store, workforce, optimizer=optimizer).run_delegated_auto_assign(
            WEEK_START
        ))

        assert seen == [True]
        assert not store.is_locked(WEEK_START)

    def test_missing_credentials_fail_before_request(self, store, workforce):
        optimizer = _delegated(json.dumps(ANSWER), api_key=None)

        with pytest.raises(CredentialError):
            AutoPlanner(store, workforce, optimizer=optimizer).run(Strategy.DELEGATED, WEEK_START)

        assert optimizer.transport.calls == 0
        assert not store.is_locked(WEEK_START)

    def test_invalid_answer_applies_nothing(self, store, workforce):
        """Test an unknown siteId aborts the run with zero assignments applied."""
        answer = json.loads(json.dumps(ANSWER))
        answer["assignments"]["emp-6"]["2024-08-08"][0]["siteId"] = "site-404"
        planner = AutoPlanner(store, workforce, optimizer=_delegated(json.dumps(answer)))

        with pytest.raises(SchemaError):
            planner.run(Strategy.DELEGATED, WEEK_START)

        assert _booking_count(store) == 0
        assert store.version == 0
        assert not store.is_locked(WEEK_START)

    def test_no_fallback_to_heuristic(self, store, workforce):
        planner = AutoPlanner(store, workforce, optimizer=_delegated("this is not json"))
        with pytest.raises(SchemaError):
            planner.run(Strategy.DELEGATED, WEEK_START)
        assert _booking_count(store) == 0

    def test_stale_store_rejected(self, store, workforce):
        """Test a store change during the call discards the plan."""
        optimizer = _delegated(
            json.dumps(ANSWER),
            during_call=lambda: store.add_assignment(
                "jolly-emp-6", date(2024, 8, 12), "site-2", "07:00", "11:00"
            ),
        )
        planner = AutoPlanner(store, workforce, optimizer=optimizer)

        with pytest.raises(StaleStateError):
            planner.run(Strategy.DELEGATED, WEEK_START)

        assert _booking_count(store) == 1
        assert store.weekly_workload(WEEK) == {"emp-3": 0.0, "emp-6": 0.0}
        assert not store.is_locked(WEEK_START)
