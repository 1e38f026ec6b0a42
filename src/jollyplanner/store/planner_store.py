"""The mutable weekly planner grid.

PlannerStore keeps the published view of every planner: one derived planner
per floater in the roster, followed by the manually created planners that are
not bound to anybody. The repository is the single source of truth; the view
is recomputed from it and the roster on every published change.

Every mutation builds new immutable Schedule objects, persists them and then
publishes the new view in one step, so listeners never observe a half-applied
change.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from jollyplanner.domain.models import Assignment, Employee, Schedule, UncoveredShift
from jollyplanner.domain.plan import AssignmentPlan
from jollyplanner.domain.timeutils import (
    DateLike,
    date_key,
    format_minutes,
    parse_time,
    split_hours_range,
)
from jollyplanner.errors import (
    ConflictError,
    NotFoundError,
    StaleStateError,
    ValidationError,
    WeekLockedError,
)
from jollyplanner.store.repository import ScheduleRepository, new_schedule_id
from jollyplanner.validation.conflicts import BookingConflict, ConflictDetector

logger = logging.getLogger(__name__)

DEFAULT_PLANNER_LABEL = "New planner"

Listener = Callable[["PlannerStore"], None]


def derived_planner_id(floater_id: str) -> str:
    """Id of the planner derived for a floater."""
    return f"jolly-{floater_id}"


def new_assignment_id() -> str:
    return f"asg-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class WeekReservation:
    """Lock on a set of dates held by an in-flight delegated run."""

    token: str
    dates: frozenset[str]


class PlannerStore:
    """Weekly planner grid with optimistic persistence.

    Example:
        >>> store = PlannerStore(InMemoryScheduleRepository(), employees)
        >>> planner = store.planners()[0]
        >>> store.add_assignment(planner.id, "2024-08-05", "site-1", "08:00", "12:00")
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        employees: Iterable[Employee] = (),
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """Initialize the store.

        Args:
            repository: Persistence backend for schedules.
            employees: Employee roster; floaters get a derived planner each.
            id_factory: Generator of booking ids (defaults to random ids).
        """
        self._repository = repository
        self._employees = list(employees)
        self._new_id = id_factory or new_assignment_id
        self._listeners: list[Listener] = []
        self._reservations: dict[str, WeekReservation] = {}
        self._version = 0
        self._view: list[Schedule] = self._build_view()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        """Generation counter, incremented on every published change."""
        return self._version

    @property
    def employees(self) -> list[Employee]:
        return list(self._employees)

    @property
    def floaters(self) -> list[Employee]:
        return [e for e in self._employees if e.is_floater]

    def planners(self) -> list[Schedule]:
        """Current view: floater planners in roster order, then unbound planners."""
        return list(self._view)

    def get_planner(self, planner_id: str) -> Optional[Schedule]:
        for planner in self._view:
            if planner.id == planner_id:
                return planner
        return None

    def planner_for_floater(self, floater_id: str) -> Optional[Schedule]:
        for planner in self._view:
            if planner.employee_id == floater_id:
                return planner
        return None

    def weekly_hours(self, planner_id: str, week: Iterable[DateLike]) -> float:
        """Total booked hours of a planner over the given dates.

        Raises:
            NotFoundError: If the planner does not exist.
        """
        return self._require(planner_id).weekly_hours(week)

    def weekly_workload(self, week: Iterable[DateLike]) -> dict[str, float]:
        """Booked hours per floater over the given dates, in roster order.

        Unbound planners are left out until they are bound.
        """
        week = list(week)
        workload = {}
        for floater in self.floaters:
            planner = self.planner_for_floater(floater.id)
            workload[floater.id] = planner.weekly_hours(week) if planner else 0.0
        return workload

    def conflicts(self) -> set[str]:
        """Ids of bookings overlapping another booking on the same planner/day."""
        return ConflictDetector().detect(self._view)

    def find_conflicts(self) -> list[BookingConflict]:
        return ConflictDetector().find_conflicts(self._view)

    # ------------------------------------------------------------------
    # Observers and reservations
    # ------------------------------------------------------------------

    def add_listener(self, callback: Listener) -> None:
        """Register a callback run once after every published change."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def reserve_week(self, dates: Iterable[DateLike]) -> WeekReservation:
        """Reserve dates for an in-flight delegated run.

        While reserved, mutations touching those dates raise WeekLockedError
        unless they are made through the reservation.

        Raises:
            WeekLockedError: If any date is already reserved.
        """
        keys = frozenset(date_key(d) for d in dates)
        for existing in self._reservations.values():
            if existing.dates & keys:
                raise WeekLockedError(
                    f"Week already reserved ({', '.join(sorted(existing.dates & keys))})"
                )
        reservation = WeekReservation(token=uuid.uuid4().hex, dates=keys)
        self._reservations[reservation.token] = reservation
        logger.debug("Reserved %d dates (%s)", len(keys), reservation.token)
        return reservation

    def release(self, reservation: WeekReservation) -> None:
        """Release a reservation. Releasing twice is a no-op."""
        if self._reservations.pop(reservation.token, None) is not None:
            logger.debug("Released reservation %s", reservation.token)

    def is_locked(self, day: DateLike) -> bool:
        key = date_key(day)
        return any(key in r.dates for r in self._reservations.values())

    # ------------------------------------------------------------------
    # Booking mutations
    # ------------------------------------------------------------------

    def add_assignment(
        self,
        planner_id: str,
        day: DateLike,
        site_id: str,
        start_time: str,
        end_time: str,
        reservation: Optional[WeekReservation] = None,
    ) -> Schedule:
        """Append a new booking to a planner's day.

        Args:
            planner_id: Target planner.
            day: Booking date.
            site_id: Site to book.
            start_time: "HH:MM" start.
            end_time: "HH:MM" end.
            reservation: Reservation allowing writes to a locked week.

        Returns:
            The updated planner.

        Raises:
            ValidationError: If site_id is empty, the planner does not exist,
                or the end is not after the start.
            ParseError: If either time is malformed.
            WeekLockedError: If the date is reserved by someone else.
        """
        if not site_id:
            raise ValidationError("A site is required")
        planner = self.get_planner(planner_id)
        if planner is None:
            raise ValidationError(f"Planner {planner_id} does not exist")
        start, end = _normalize_times(start_time, end_time)
        self._check_unlocked([day], reservation)

        assignment = Assignment(id=self._new_id(), site_id=site_id, start_time=start, end_time=end)
        updated = planner.with_day(day, planner.day(day) + (assignment,))
        self._commit([updated])
        logger.debug("Added %s to %s on %s", assignment.id, planner_id, date_key(day))
        return updated

    def edit_assignment(
        self,
        planner_id: str,
        day: DateLike,
        assignment_id: str,
        site_id: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        reservation: Optional[WeekReservation] = None,
    ) -> Schedule:
        """Replace fields of an existing booking.

        Raises:
            NotFoundError: If the planner or the booking does not exist.
            ValidationError: If site_id is given but empty, or the times are inverted.
            ParseError: If a new time is malformed.
        """
        planner = self._require(planner_id)
        current = planner.find(day, assignment_id)
        if current is None:
            raise NotFoundError(
                f"Assignment {assignment_id} not found in planner {planner_id} on {date_key(day)}"
            )
        if site_id is not None and not site_id:
            raise ValidationError("A site is required")
        start, end = _normalize_times(
            current.start_time if start_time is None else start_time,
            current.end_time if end_time is None else end_time,
        )
        self._check_unlocked([day], reservation)

        edited = Assignment(
            id=current.id,
            site_id=current.site_id if site_id is None else site_id,
            start_time=start,
            end_time=end,
        )
        items = tuple(edited if a.id == assignment_id else a for a in planner.day(day))
        updated = planner.with_day(day, items)
        self._commit([updated])
        return updated

    def remove_assignment(
        self,
        planner_id: str,
        day: DateLike,
        assignment_id: str,
        reservation: Optional[WeekReservation] = None,
    ) -> Optional[Schedule]:
        """Remove a booking. Removing an absent booking is a no-op.

        Returns:
            The planner after removal, or None if the planner does not exist.
        """
        planner = self.get_planner(planner_id)
        if planner is None or planner.find(day, assignment_id) is None:
            logger.debug("Nothing to remove: %s on %s/%s", assignment_id, planner_id, day)
            return planner
        self._check_unlocked([day], reservation)

        updated = planner.with_day(day, [a for a in planner.day(day) if a.id != assignment_id])
        self._commit([updated])
        return updated

    def move_assignment(
        self,
        source_planner_id: str,
        source_day: DateLike,
        assignment_id: str,
        target_planner_id: str,
        target_day: DateLike,
        reservation: Optional[WeekReservation] = None,
    ) -> tuple[Schedule, Schedule]:
        """Move a booking to another planner and/or day.

        The moved booking gets a new id. Both planners are persisted before the
        new view is published; a persistence failure rolls both back.

        Returns:
            (source planner, target planner) after the move.

        Raises:
            NotFoundError: If either planner or the booking does not exist.
        """
        source = self._require(source_planner_id)
        target = self._require(target_planner_id)
        moving = source.find(source_day, assignment_id)
        if moving is None:
            raise NotFoundError(
                f"Assignment {assignment_id} not found in planner {source_planner_id} "
                f"on {date_key(source_day)}"
            )
        if source.id == target.id and date_key(source_day) == date_key(target_day):
            return source, target
        self._check_unlocked([source_day, target_day], reservation)

        moved = Assignment(
            id=self._new_id(),
            site_id=moving.site_id,
            start_time=moving.start_time,
            end_time=moving.end_time,
        )
        new_source = source.with_day(
            source_day, [a for a in source.day(source_day) if a.id != assignment_id]
        )
        if source.id == target.id:
            new_source = new_source.with_day(target_day, new_source.day(target_day) + (moved,))
            self._commit([new_source])
            return new_source, new_source

        new_target = target.with_day(target_day, target.day(target_day) + (moved,))
        self._commit([new_source, new_target])
        logger.debug(
            "Moved %s from %s to %s as %s",
            assignment_id, source_planner_id, target_planner_id, moved.id,
        )
        return new_source, new_target

    def assign_uncovered_shift(
        self,
        planner_id: str,
        shift: UncoveredShift,
        reservation: Optional[WeekReservation] = None,
    ) -> Schedule:
        """Book an uncovered shift on a planner, on the shift's date and hours.

        Raises:
            ParseError: If the shift's working hours are malformed.
            ValidationError: If the planner does not exist.
        """
        start, end = split_hours_range(shift.working_hours)
        return self.add_assignment(
            planner_id, shift.date, shift.site_id, start, end, reservation=reservation
        )

    # ------------------------------------------------------------------
    # Planner mutations
    # ------------------------------------------------------------------

    def add_planner(self, label: str = DEFAULT_PLANNER_LABEL) -> Schedule:
        """Create an empty, unbound planner."""
        planner = Schedule(
            id=new_schedule_id(),
            employee_id=None,
            label=label.strip() or DEFAULT_PLANNER_LABEL,
        )
        self._commit([planner])
        logger.debug("Created planner %s", planner.id)
        return self._require(planner.id)

    def remove_planner(self, planner_id: str) -> None:
        """Delete a manual planner. Removing a missing planner is a no-op.

        Raises:
            ConflictError: If the planner is bound to a floater; unbind it first.
            WeekLockedError: If it holds bookings in a reserved week.
        """
        planner = self.get_planner(planner_id)
        if planner is None:
            return
        if planner.is_bound:
            raise ConflictError(
                f"Planner {planner_id} is bound to floater {planner.employee_id}; "
                "unbind it instead of removing it",
                existing_planner_id=planner_id,
            )
        self._check_unlocked(planner.assignments, None)
        self._repository.delete(planner_id)
        self._publish()

    def bind_employee(self, planner_id: str, employee_id: Optional[str]) -> Schedule:
        """Bind a planner to a floater, or unbind it with None.

        Binding relabels the planner with the floater's name. A floater can
        have at most one persisted planner bound to it.

        Raises:
            NotFoundError: If the planner does not exist.
            ValidationError: If the employee is not a floater in the roster.
            ConflictError: If the floater already has another bound planner.
        """
        planner = self._require(planner_id)
        if planner.employee_id == employee_id:
            return planner
        self._check_unlocked(planner.assignments, None)

        if employee_id is None:
            updated = planner.with_binding(None)
        else:
            floater = self._floater(employee_id)
            if floater is None:
                raise ValidationError(f"Employee {employee_id} is not a floater in the roster")
            for existing in self._repository.all():
                if existing.employee_id == employee_id and existing.id != planner_id:
                    raise ConflictError(
                        f"Floater {floater.name} is already bound to planner {existing.id}",
                        existing_planner_id=existing.id,
                    )
            updated = planner.with_binding(employee_id, label=floater.name)

        self._commit([updated])
        logger.debug("Bound planner %s to %s", planner_id, employee_id)
        return self._require(planner_id)

    def update_roster(self, employees: Iterable[Employee]) -> None:
        """Replace the employee roster and re-derive the floater planners."""
        self._employees = list(employees)
        self._publish()

    def refresh(self) -> None:
        """Re-read the repository and publish the resulting view."""
        self._publish()

    # ------------------------------------------------------------------
    # Batch application
    # ------------------------------------------------------------------

    def apply_plan(
        self,
        plan: AssignmentPlan,
        expected_version: Optional[int] = None,
        reservation: Optional[WeekReservation] = None,
    ) -> list[Schedule]:
        """Apply every booking of a plan in one published change.

        All resulting planners are computed and checked before anything is
        written. Nothing is applied if any entry is invalid.

        Args:
            plan: Plan to apply.
            expected_version: Store version the plan was computed against.
            reservation: Reservation held by the run that produced the plan.

        Returns:
            The changed planners.

        Raises:
            StaleStateError: If the store changed since expected_version.
            ValidationError: If an entry names an unknown floater or no site.
            ParseError: If an entry has malformed times.
            WeekLockedError: If an entry falls in a week reserved by someone else.
        """
        if expected_version is not None and expected_version != self._version:
            logger.warning(
                "Rejecting stale plan from %s (version %d, now %d)",
                plan.strategy, expected_version, self._version,
            )
            raise StaleStateError(expected_version, self._version)
        if plan.is_empty:
            return []

        self._check_unlocked([e.date for e in plan.entries], reservation)

        changed: dict[str, Schedule] = {}
        for entry in plan.entries:
            if self._floater(entry.floater_id) is None:
                raise ValidationError(f"Unknown floater {entry.floater_id} in plan")
            if not entry.site_id:
                raise ValidationError(f"Plan entry for {entry.floater_id} has no site")
            start, end = _normalize_times(entry.start_time, entry.end_time)

            planner = self.planner_for_floater(entry.floater_id)
            planner = changed.get(planner.id, planner)
            assignment = Assignment(
                id=self._new_id(), site_id=entry.site_id, start_time=start, end_time=end
            )
            changed[planner.id] = planner.with_day(
                entry.date, planner.day(entry.date) + (assignment,)
            )

        self._commit(list(changed.values()))
        logger.info(
            "Applied %d %s assignments across %d planners",
            len(plan.entries), plan.strategy, len(changed),
        )
        return [self._require(planner_id) for planner_id in changed]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _floater(self, employee_id: str) -> Optional[Employee]:
        for employee in self._employees:
            if employee.id == employee_id and employee.is_floater:
                return employee
        return None

    def _require(self, planner_id: str) -> Schedule:
        planner = self.get_planner(planner_id)
        if planner is None:
            raise NotFoundError(f"Planner {planner_id} not found")
        return planner

    def _check_unlocked(
        self,
        days: Iterable[DateLike],
        reservation: Optional[WeekReservation],
    ) -> None:
        keys = {date_key(d) for d in days}
        for token, held in self._reservations.items():
            if reservation is not None and token == reservation.token:
                continue
            locked = keys & held.dates
            if locked:
                raise WeekLockedError(
                    f"Dates {', '.join(sorted(locked))} are reserved by a running optimizer"
                )

    def _build_view(self) -> list[Schedule]:
        persisted = self._repository.all()
        taken = {s.id for s in persisted}
        view = []
        for floater in self.floaters:
            bound = [s for s in persisted if s.employee_id == floater.id]
            if bound:
                # Prefer the derived id when a floater ended up with more than one
                bound.sort(key=lambda s: s.id != derived_planner_id(floater.id))
                view.append(bound[0])
                continue
            planner_id = derived_planner_id(floater.id)
            suffix = 2
            while planner_id in taken:
                # An unbound planner kept the derived id
                planner_id = f"{derived_planner_id(floater.id)}-{suffix}"
                suffix += 1
            view.append(Schedule(id=planner_id, employee_id=floater.id, label=floater.name))
        floater_ids = {f.id for f in self.floaters}
        for schedule in persisted:
            if schedule.employee_id is None:
                view.append(schedule)
            elif schedule.employee_id not in floater_ids:
                logger.debug(
                    "Hiding planner %s: %s is no longer a floater",
                    schedule.id, schedule.employee_id,
                )
        return view

    def _publish(self) -> None:
        self._view = self._build_view()
        self._version += 1
        for listener in list(self._listeners):
            listener(self)

    def _commit(self, schedules: list[Schedule]) -> None:
        """Persist schedules, rolling back written ones if any write fails."""
        written: list[tuple[Schedule, Optional[Schedule]]] = []
        try:
            for schedule in schedules:
                previous = self._repository.get(schedule.id)
                if previous is None:
                    self._repository.create(schedule)
                else:
                    self._repository.save(schedule.id, schedule)
                written.append((schedule, previous))
        except Exception:
            logger.warning("Persisting %d planners failed, rolling back", len(schedules))
            for schedule, previous in reversed(written):
                if previous is None:
                    self._repository.delete(schedule.id)
                else:
                    self._repository.save(previous.id, previous)
            raise
        self._publish()


def _normalize_times(start_time: str, end_time: str) -> tuple[str, str]:
    start = parse_time(start_time)
    end = parse_time(end_time)
    if end <= start:
        raise ValidationError(f"End time {end_time} must be after start time {start_time}")
    return format_minutes(start), format_minutes(end)
