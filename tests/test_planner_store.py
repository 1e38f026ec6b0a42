"""Tests for the planner store."""

import itertools
from datetime import date

import pytest

from jollyplanner.domain.models import UNBOUND, Bound, Employee, Role, Schedule, UncoveredShift
from jollyplanner.domain.plan import AssignmentPlan, PlannedAssignment
from jollyplanner.domain.timeutils import week_dates
from jollyplanner.errors import (
    ConflictError,
    NotFoundError,
    ParseError,
    RepositoryError,
    StaleStateError,
    ValidationError,
    WeekLockedError,
)
from jollyplanner.store.planner_store import PlannerStore, derived_planner_id
from jollyplanner.store.repository import InMemoryScheduleRepository

MONDAY = date(2024, 8, 5)
TUESDAY = date(2024, 8, 6)
WEEK = week_dates(MONDAY)


def _counter_ids():
    counter = itertools.count(1)
    return lambda: f"asg-{next(counter)}"


class FailingRepository(InMemoryScheduleRepository):
    """In-memory repository failing writes for one schedule id."""

    def __init__(self, fail_id):
        super().__init__()
        self.fail_id = fail_id
        self.enabled = False

    def create(self, schedule):
        if self.enabled and schedule.id == self.fail_id:
            raise RepositoryError("disk full")
        return super().create(schedule)

    def save(self, schedule_id, schedule):
        if self.enabled and schedule_id == self.fail_id:
            raise RepositoryError("disk full")
        return super().save(schedule_id, schedule)


class TestPlannerView:
    """Tests for the derived planner view."""

    @pytest.fixture
    def employees(self):
        return [
            Employee("op-1", "Mario", "Rossi", Role.OPERATOR),
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("fl-2", "Luca", "Azzurri", Role.FLOATER),
        ]

    @pytest.fixture
    def store(self, employees):
        return PlannerStore(InMemoryScheduleRepository(), employees, id_factory=_counter_ids())

    def test_one_derived_planner_per_floater(self, store):
        """Test floaters get a planner each, in roster order, operators none."""
        planners = store.planners()
        assert [p.id for p in planners] == ["jolly-fl-1", "jolly-fl-2"]
        assert [p.label for p in planners] == ["Anna Bianchi", "Luca Azzurri"]
        assert all(p.is_bound for p in planners)

    def test_derived_planner_not_persisted_until_changed(self, store):
        repository = store._repository
        assert repository.all() == []
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        assert [s.id for s in repository.all()] == ["jolly-fl-1"]

    def test_manual_planners_after_floaters(self, store):
        manual = store.add_planner("Extra")
        assert [p.id for p in store.planners()][-1] == manual.id
        assert not manual.is_bound
        assert manual.label == "Extra"

    def test_roster_change_is_a_projection(self, store, employees):
        """Test removing a floater from the roster hides its planner without deleting it."""
        store.add_assignment("jolly-fl-2", MONDAY, "site-1", "08:00", "12:00")
        store.update_roster(employees[:2])
        assert [p.id for p in store.planners()] == ["jolly-fl-1"]
        assert store._repository.get("jolly-fl-2") is not None

        store.update_roster(employees)
        assert store.get_planner("jolly-fl-2").assignment_count == 1

    def test_weekly_hours_and_workload(self, store):
        """Test weekly totals sum durations over the displayed week only."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        store.add_assignment("jolly-fl-1", TUESDAY, "site-1", "13:00", "14:30")
        store.add_assignment("jolly-fl-1", date(2024, 8, 12), "site-1", "08:00", "12:00")
        manual = store.add_planner("Extra")
        store.add_assignment(manual.id, MONDAY, "site-1", "08:00", "18:00")

        assert store.weekly_hours("jolly-fl-1", WEEK) == 5.5
        assert store.weekly_workload(WEEK) == {"fl-1": 5.5, "fl-2": 0.0}

    def test_weekly_hours_unknown_planner(self, store):
        with pytest.raises(NotFoundError):
            store.weekly_hours("nope", WEEK)

    def test_binding(self, store):
        manual = store.add_planner("Extra")
        assert store.get_planner("jolly-fl-1").binding == Bound("fl-1")
        assert manual.binding == UNBOUND

    def test_refresh_reads_repository(self, store):
        """Test refresh picks up schedules written behind the store's back."""
        store._repository.create(Schedule(id="manual-1", employee_id=None, label="Imported"))
        assert store.get_planner("manual-1") is None

        store.refresh()

        assert store.get_planner("manual-1").label == "Imported"
        assert store.version == 1

    def test_remove_listener(self, store):
        calls = []
        listener = calls.append
        store.add_listener(listener)
        store.add_planner("Extra")
        store.remove_listener(listener)
        store.remove_listener(listener)
        store.add_planner("Other")
        assert calls == [store]

    def test_conflicts(self, store):
        """Test the store exposes the conflict set of its current view."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "10:00")
        store.add_assignment("jolly-fl-1", MONDAY, "site-2", "09:00", "11:00")
        store.add_assignment("jolly-fl-2", MONDAY, "site-2", "09:00", "11:00")
        assert store.conflicts() == {"asg-1", "asg-2"}


class TestBookingMutations:
    """Tests for add, edit, remove and move."""

    @pytest.fixture
    def store(self):
        employees = [
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("fl-2", "Luca", "Azzurri", Role.FLOATER),
        ]
        return PlannerStore(InMemoryScheduleRepository(), employees, id_factory=_counter_ids())

    def test_add_assignment(self, store):
        planner = store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        booking = planner.day(MONDAY)[0]
        assert booking.id == "asg-1"
        assert booking.site_id == "site-1"
        assert (booking.start_time, booking.end_time) == ("08:00", "12:00")

    def test_add_appends_in_order(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "14:00", "16:00")
        planner = store.add_assignment("jolly-fl-1", MONDAY, "site-2", "08:00", "10:00")
        assert [a.id for a in planner.day(MONDAY)] == ["asg-1", "asg-2"]

    def test_add_returns_new_state(self, store):
        """Test mutations never modify a previously returned planner."""
        before = store.get_planner("jolly-fl-1")
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        assert before.day(MONDAY) == ()
        assert len(store.get_planner("jolly-fl-1").day(MONDAY)) == 1

    def test_add_requires_site(self, store):
        with pytest.raises(ValidationError):
            store.add_assignment("jolly-fl-1", MONDAY, "", "08:00", "12:00")
        assert store.version == 0

    def test_add_unknown_planner(self, store):
        with pytest.raises(ValidationError):
            store.add_assignment("nope", MONDAY, "site-1", "08:00", "12:00")

    def test_add_malformed_time(self, store):
        """Test write paths raise ParseError on bad times."""
        with pytest.raises(ParseError):
            store.add_assignment("jolly-fl-1", MONDAY, "site-1", "8am", "12:00")
        assert store.get_planner("jolly-fl-1").assignment_count == 0

    def test_add_inverted_times(self, store):
        with pytest.raises(ValidationError):
            store.add_assignment("jolly-fl-1", MONDAY, "site-1", "12:00", "08:00")

    def test_edit_assignment(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        planner = store.edit_assignment("jolly-fl-1", MONDAY, "asg-1", end_time="13:00")
        booking = planner.day(MONDAY)[0]
        assert booking.id == "asg-1"
        assert booking.site_id == "site-1"
        assert booking.end_time == "13:00"

    def test_edit_missing_assignment(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        with pytest.raises(NotFoundError):
            store.edit_assignment("jolly-fl-1", TUESDAY, "asg-1", end_time="13:00")
        with pytest.raises(NotFoundError):
            store.edit_assignment("nope", MONDAY, "asg-1", end_time="13:00")

    def test_edit_rejects_empty_site(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        with pytest.raises(ValidationError):
            store.edit_assignment("jolly-fl-1", MONDAY, "asg-1", site_id="")

    def test_remove_is_idempotent(self, store):
        """Test removing twice yields the same state and no error."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        store.add_assignment("jolly-fl-1", MONDAY, "site-2", "13:00", "15:00")

        first = store.remove_assignment("jolly-fl-1", MONDAY, "asg-1")
        second = store.remove_assignment("jolly-fl-1", MONDAY, "asg-1")

        assert first == second
        assert [a.id for a in second.day(MONDAY)] == ["asg-2"]

    def test_remove_last_booking_drops_day(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        planner = store.remove_assignment("jolly-fl-1", MONDAY, "asg-1")
        assert planner.assignments == {}

    def test_remove_from_unknown_planner_is_noop(self, store):
        assert store.remove_assignment("nope", MONDAY, "asg-1") is None

    def test_move_between_planners(self, store):
        """Test the booking leaves the source and a new-id copy lands on the target."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        store.add_assignment("jolly-fl-2", TUESDAY, "site-2", "14:00", "16:00")
        total_before = sum(p.assignment_count for p in store.planners())

        source, target = store.move_assignment(
            "jolly-fl-1", MONDAY, "asg-1", "jolly-fl-2", TUESDAY
        )

        assert source.find(MONDAY, "asg-1") is None
        moved = [a for a in target.day(TUESDAY) if a.site_id == "site-1"]
        assert len(moved) == 1
        assert moved[0].id != "asg-1"
        assert (moved[0].start_time, moved[0].end_time) == ("08:00", "12:00")
        assert sum(p.assignment_count for p in store.planners()) == total_before

    def test_move_within_planner(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        source, target = store.move_assignment(
            "jolly-fl-1", MONDAY, "asg-1", "jolly-fl-1", TUESDAY
        )
        assert source is target
        assert source.day(MONDAY) == ()
        assert len(source.day(TUESDAY)) == 1

    def test_move_to_same_place_is_noop(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        version = store.version
        source, target = store.move_assignment(
            "jolly-fl-1", MONDAY, "asg-1", "jolly-fl-1", MONDAY
        )
        assert store.version == version
        assert source.find(MONDAY, "asg-1") is not None

    def test_move_publishes_once(self, store):
        """Test listeners see both sides of a move in a single update."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        seen = []
        store.add_listener(
            lambda s: seen.append(sum(p.assignment_count for p in s.planners()))
        )

        store.move_assignment("jolly-fl-1", MONDAY, "asg-1", "jolly-fl-2", MONDAY)

        assert seen == [1]

    def test_move_missing_assignment(self, store):
        with pytest.raises(NotFoundError):
            store.move_assignment("jolly-fl-1", MONDAY, "asg-9", "jolly-fl-2", MONDAY)

    def test_move_rolls_back_on_target_failure(self):
        """Test a failed target write leaves the booking on the source."""
        employees = [
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("fl-2", "Luca", "Azzurri", Role.FLOATER),
        ]
        repository = FailingRepository("jolly-fl-2")
        store = PlannerStore(repository, employees, id_factory=_counter_ids())
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        repository.enabled = True

        with pytest.raises(RepositoryError):
            store.move_assignment("jolly-fl-1", MONDAY, "asg-1", "jolly-fl-2", MONDAY)

        assert repository.get("jolly-fl-1").find(MONDAY, "asg-1") is not None
        assert repository.get("jolly-fl-2") is None
        assert store.get_planner("jolly-fl-1").find(MONDAY, "asg-1") is not None
        assert store.get_planner("jolly-fl-2").assignment_count == 0

    def test_assign_uncovered_shift(self, store):
        """Test dropping an uncovered shift books its date, site and hours."""
        shift = UncoveredShift(
            id="2024-08-06/site-1/op-1",
            date=TUESDAY,
            site_id="site-1",
            site_name="Condominio Sole",
            employee_id="op-1",
            employee_name="Mario Rossi",
            working_hours="14:00 - 18:00",
        )
        planner = store.assign_uncovered_shift("jolly-fl-2", shift)
        booking = planner.day(TUESDAY)[0]
        assert (booking.site_id, booking.start_time, booking.end_time) == (
            "site-1",
            "14:00",
            "18:00",
        )

    def test_assign_uncovered_shift_malformed_hours(self, store):
        shift = UncoveredShift(
            "x", TUESDAY, "site-1", "Sole", "op-1", "Mario Rossi", "morning"
        )
        with pytest.raises(ParseError):
            store.assign_uncovered_shift("jolly-fl-2", shift)


class TestPlannerBinding:
    """Tests for add_planner, remove_planner and bind_employee."""

    @pytest.fixture
    def store(self):
        employees = [
            Employee("op-1", "Mario", "Rossi", Role.OPERATOR),
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("fl-2", "Luca", "Azzurri", Role.FLOATER),
        ]
        return PlannerStore(InMemoryScheduleRepository(), employees, id_factory=_counter_ids())

    def test_bind_manual_planner(self, store):
        """Test binding relabels the planner and replaces the derived one."""
        manual = store.add_planner("Extra")
        store.add_assignment(manual.id, MONDAY, "site-1", "08:00", "12:00")

        bound = store.bind_employee(manual.id, "fl-2")

        assert bound.employee_id == "fl-2"
        assert bound.label == "Luca Azzurri"
        assert store.planner_for_floater("fl-2").id == manual.id
        assert [p.id for p in store.planners()] == ["jolly-fl-1", manual.id]
        assert store.weekly_workload(WEEK)["fl-2"] == 4.0

    def test_bind_conflict_names_existing_planner(self, store):
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        manual = store.add_planner("Extra")

        with pytest.raises(ConflictError) as exc_info:
            store.bind_employee(manual.id, "fl-1")

        assert exc_info.value.existing_planner_id == "jolly-fl-1"
        assert not store.get_planner(manual.id).is_bound

    def test_bind_non_floater_rejected(self, store):
        manual = store.add_planner("Extra")
        with pytest.raises(ValidationError):
            store.bind_employee(manual.id, "op-1")
        with pytest.raises(ValidationError):
            store.bind_employee(manual.id, "ghost")

    def test_bind_unknown_planner(self, store):
        with pytest.raises(NotFoundError):
            store.bind_employee("nope", "fl-1")

    def test_unbind(self, store):
        """Test unbinding keeps the bookings on a manual planner and re-derives the floater's."""
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")

        unbound = store.bind_employee("jolly-fl-1", None)

        assert not unbound.is_bound
        assert unbound.assignment_count == 1
        floater_planner = store.planner_for_floater("fl-1")
        assert floater_planner.id != "jolly-fl-1"
        assert floater_planner.assignment_count == 0
        assert store.weekly_workload(WEEK)["fl-1"] == 0.0
        assert len({p.id for p in store.planners()}) == len(store.planners())

    def test_remove_manual_planner(self, store):
        manual = store.add_planner("Extra")
        store.remove_planner(manual.id)
        assert store.get_planner(manual.id) is None

    def test_remove_missing_planner_is_noop(self, store):
        store.remove_planner("nope")

    def test_remove_bound_planner_rejected(self, store):
        with pytest.raises(ConflictError):
            store.remove_planner("jolly-fl-1")
        assert store.get_planner("jolly-fl-1") is not None

    def test_empty_label_gets_default(self, store):
        assert store.add_planner("  ").label == "New planner"

    def test_derived_planner_id(self):
        assert derived_planner_id("fl-1") == "jolly-fl-1"


class TestBatchAndReservations:
    """Tests for apply_plan, versions and week reservations."""

    @pytest.fixture
    def store(self):
        employees = [
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("fl-2", "Luca", "Azzurri", Role.FLOATER),
        ]
        return PlannerStore(InMemoryScheduleRepository(), employees, id_factory=_counter_ids())

    @pytest.fixture
    def plan(self):
        return AssignmentPlan(
            strategy="heuristic",
            entries=[
                PlannedAssignment("fl-1", MONDAY, "site-1", "08:00", "12:00", "s1"),
                PlannedAssignment("fl-2", MONDAY, "site-2", "08:00", "12:00", "s2"),
                PlannedAssignment("fl-1", TUESDAY, "site-1", "08:00", "12:00", "s3"),
            ],
        )

    def test_apply_plan(self, store, plan):
        changed = store.apply_plan(plan)
        assert [p.id for p in changed] == ["jolly-fl-1", "jolly-fl-2"]
        assert store.weekly_workload(WEEK) == {"fl-1": 8.0, "fl-2": 4.0}

    def test_apply_plan_publishes_once(self, store, plan):
        versions = []
        store.add_listener(lambda s: versions.append(s.version))
        store.apply_plan(plan)
        assert versions == [1]

    def test_apply_empty_plan(self, store):
        assert store.apply_plan(AssignmentPlan(strategy="heuristic")) == []
        assert store.version == 0

    def test_apply_plan_unknown_floater_applies_nothing(self, store, plan):
        plan.entries.append(PlannedAssignment("ghost", MONDAY, "site-1", "08:00", "12:00"))
        with pytest.raises(ValidationError):
            store.apply_plan(plan)
        assert sum(p.assignment_count for p in store.planners()) == 0

    def test_stale_version_rejected(self, store, plan):
        """Test a plan computed against an older version is not applied."""
        expected = store.version
        store.add_assignment("jolly-fl-2", TUESDAY, "site-9", "18:00", "19:00")

        with pytest.raises(StaleStateError) as exc_info:
            store.apply_plan(plan, expected_version=expected)

        assert exc_info.value.expected_version == expected
        assert store.weekly_workload(WEEK) == {"fl-1": 0.0, "fl-2": 1.0}

    def test_reserved_week_blocks_mutations(self, store):
        reservation = store.reserve_week(WEEK)
        with pytest.raises(WeekLockedError):
            store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")
        store.add_assignment("jolly-fl-1", date(2024, 8, 12), "site-1", "08:00", "12:00")
        store.release(reservation)
        store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")

    def test_reservation_holder_may_apply(self, store, plan):
        reservation = store.reserve_week(WEEK)
        expected = store.version
        store.apply_plan(plan, expected_version=expected, reservation=reservation)
        store.release(reservation)
        store.release(reservation)
        assert store.weekly_workload(WEEK)["fl-1"] == 8.0

    def test_double_reservation_rejected(self, store):
        store.reserve_week(WEEK)
        with pytest.raises(WeekLockedError):
            store.reserve_week([TUESDAY])

    def test_lock_is_a_conflict(self, store):
        """Test WeekLockedError can be handled as a ConflictError."""
        store.reserve_week(WEEK)
        with pytest.raises(ConflictError):
            store.add_assignment("jolly-fl-1", MONDAY, "site-1", "08:00", "12:00")

    def test_store_reads_existing_schedules(self):
        """Test persisted schedules become the planners' state."""
        repository = InMemoryScheduleRepository(
            [Schedule.from_dict({
                "id": "custom",
                "employeeId": "fl-1",
                "label": "Anna",
                "assignments": {
                    "2024-08-05": [
                        {"id": "x", "siteId": "site-1", "startTime": "08:00", "endTime": "10:00"}
                    ]
                },
            })]
        )
        store = PlannerStore(repository, [Employee("fl-1", "Anna", "Bianchi", Role.FLOATER)])
        assert store.planner_for_floater("fl-1").id == "custom"
        assert store.weekly_hours("custom", WEEK) == 2.0
