"""Validation of delegated optimizer output.

Every plan coming back from the external optimizer is checked here against
the request it answers before anything touches the planner store. The check
needs no network access, so it can be exercised with canned responses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from jollyplanner.domain.plan import AssignmentPlan, PlannedAssignment
from jollyplanner.domain.timeutils import format_minutes, parse_hours_range, parse_time, to_date
from jollyplanner.errors import ParseError
from jollyplanner.optimizer.contract import OptimizerRequest, OptimizerResponse, ProposedBooking


class PlanIssueType(Enum):
    """Types of plan validation issues."""

    UNKNOWN_FLOATER = "unknown_floater"
    UNKNOWN_SITE = "unknown_site"
    INVALID_TIME = "invalid_time"
    INVERTED_TIME = "inverted_time"
    INVALID_DATE = "invalid_date"
    DATE_OUTSIDE_WEEK = "date_outside_week"
    UNKNOWN_SHIFT = "unknown_shift"
    SHIFT_MISMATCH = "shift_mismatch"
    UNMATCHED_BOOKING = "unmatched_booking"
    SHIFT_COVERED_TWICE = "shift_covered_twice"
    SHIFT_MISSING = "shift_missing"


@dataclass
class PlanIssue:
    """A single plan validation issue."""

    issue_type: PlanIssueType
    message: str
    floater_id: Optional[str] = None
    date_key: Optional[str] = None

    def __str__(self) -> str:
        parts = [f"[{self.issue_type.value}]"]
        if self.floater_id:
            parts.append(f"Floater {self.floater_id}:")
        parts.append(self.message)
        if self.date_key:
            parts.append(f"({self.date_key})")
        return " ".join(parts)


@dataclass
class PlanValidationResult:
    """Result of validating an optimizer response."""

    is_valid: bool
    issues: list[PlanIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    plan: Optional[AssignmentPlan] = None

    def add_issue(self, issue: PlanIssue) -> None:
        """Add an issue and mark as invalid."""
        self.issues.append(issue)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)

    @property
    def messages(self) -> list[str]:
        return [str(issue) for issue in self.issues]


class PlanValidator:
    """Checks an optimizer response against the request it answers.

    A response is valid when every floater id is in the roster, every site
    id exists, every time parses and ends after it starts, every date lies in
    the requested week, and every uncovered shift is either covered exactly
    once or listed as unassigned.

    Bookings naming a shiftId must match that shift's date and site. Bookings
    without one are matched to the first still-uncovered shift with the same
    date, site and hours.

    Example:
        >>> result = PlanValidator().validate(response, request)
        >>> if not result.is_valid:
        ...     for issue in result.issues:
        ...         print(issue)
    """

    def validate(
        self,
        response: OptimizerResponse,
        request: OptimizerRequest,
        strategy: str = "delegated",
    ) -> PlanValidationResult:
        """Validate a response and build the plan it describes.

        Args:
            response: Structurally parsed optimizer output.
            request: The request the response answers.
            strategy: Strategy name recorded on the plan.

        Returns:
            PlanValidationResult; result.plan is set only when valid.
        """
        result = PlanValidationResult(is_valid=True)

        floater_ids = {f.id for f in request.floaters}
        site_ids = {s.id for s in request.sites}
        week_keys = {d.isoformat() for d in request.week}
        shifts_by_id = {s.id: s for s in request.shifts}
        covered: dict[str, int] = {}
        entries: list[PlannedAssignment] = []

        for booking in response.bookings:
            entry = self._check_booking(booking, floater_ids, site_ids, week_keys, result)
            if entry is None:
                continue

            shift_id = self._match_shift(booking, entry, request, covered, result)
            if shift_id is None:
                continue
            covered[shift_id] = covered.get(shift_id, 0) + 1
            entries.append(
                PlannedAssignment(
                    floater_id=entry.floater_id,
                    date=entry.date,
                    site_id=entry.site_id,
                    start_time=entry.start_time,
                    end_time=entry.end_time,
                    shift_id=shift_id,
                )
            )

        for shift_id, count in covered.items():
            if count > 1:
                result.add_issue(
                    PlanIssue(
                        issue_type=PlanIssueType.SHIFT_COVERED_TWICE,
                        message=f"Shift {shift_id} is covered {count} times",
                    )
                )

        missing = []
        for shift_id in response.unassigned:
            if shift_id not in shifts_by_id:
                result.add_issue(
                    PlanIssue(
                        issue_type=PlanIssueType.UNKNOWN_SHIFT,
                        message=f"Unassigned shift {shift_id} does not exist",
                    )
                )
            elif shift_id in covered:
                result.add_warning(f"Shift {shift_id} is both covered and listed as unassigned")
            elif shift_id not in missing:
                missing.append(shift_id)

        for shift in request.shifts:
            if shift.id not in covered and shift.id not in missing:
                result.add_issue(
                    PlanIssue(
                        issue_type=PlanIssueType.SHIFT_MISSING,
                        message=f"Shift {shift.id} is neither covered nor reported unassigned",
                        date_key=shift.date_key,
                    )
                )

        if result.is_valid:
            result.plan = AssignmentPlan(
                strategy=strategy, entries=entries, missing_shift_ids=missing
            )
        return result

    def _check_booking(
        self,
        booking: ProposedBooking,
        floater_ids: set[str],
        site_ids: set[str],
        week_keys: set[str],
        result: PlanValidationResult,
    ) -> Optional[PlannedAssignment]:
        """Check ids, date and times of one booking; None if any is wrong."""
        ok = True
        floater_id = booking.floater_id
        day = booking.date_key

        if floater_id not in floater_ids:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.UNKNOWN_FLOATER,
                    message=f"Unknown floater id {floater_id}",
                    floater_id=floater_id,
                    date_key=day,
                )
            )
            ok = False

        if booking.site_id not in site_ids:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.UNKNOWN_SITE,
                    message=f"Unknown site id {booking.site_id}",
                    floater_id=floater_id,
                    date_key=day,
                )
            )
            ok = False

        parsed_date = None
        try:
            parsed_date = to_date(day)
        except ParseError:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.INVALID_DATE,
                    message=f"Invalid date {day!r}",
                    floater_id=floater_id,
                )
            )
            ok = False
        if parsed_date is not None and parsed_date.isoformat() not in week_keys:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.DATE_OUTSIDE_WEEK,
                    message=f"Date {day} is outside the planned week",
                    floater_id=floater_id,
                    date_key=day,
                )
            )
            ok = False

        try:
            start = parse_time(booking.start_time)
            end = parse_time(booking.end_time)
        except ParseError as e:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.INVALID_TIME,
                    message=str(e),
                    floater_id=floater_id,
                    date_key=day,
                )
            )
            return None
        if end <= start:
            result.add_issue(
                PlanIssue(
                    issue_type=PlanIssueType.INVERTED_TIME,
                    message=f"{booking.start_time}-{booking.end_time} does not end after it starts",
                    floater_id=floater_id,
                    date_key=day,
                )
            )
            ok = False

        if not ok:
            return None
        return PlannedAssignment(
            floater_id=floater_id,
            date=parsed_date,
            site_id=booking.site_id,
            start_time=format_minutes(start),
            end_time=format_minutes(end),
        )

    def _match_shift(
        self,
        booking: ProposedBooking,
        entry: PlannedAssignment,
        request: OptimizerRequest,
        covered: dict[str, int],
        result: PlanValidationResult,
    ) -> Optional[str]:
        """Uncovered shift a booking covers; None (with an issue) if none fits."""
        if booking.shift_id is not None:
            shift = request.shift(booking.shift_id)
            if shift is None:
                result.add_issue(
                    PlanIssue(
                        issue_type=PlanIssueType.UNKNOWN_SHIFT,
                        message=f"Unknown shift id {booking.shift_id}",
                        floater_id=entry.floater_id,
                        date_key=booking.date_key,
                    )
                )
                return None
            if shift.date != entry.date or shift.site_id != entry.site_id:
                result.add_issue(
                    PlanIssue(
                        issue_type=PlanIssueType.SHIFT_MISMATCH,
                        message=(
                            f"Shift {shift.id} is at {shift.site_id} on {shift.date_key}, "
                            f"not {entry.site_id} on {booking.date_key}"
                        ),
                        floater_id=entry.floater_id,
                        date_key=booking.date_key,
                    )
                )
                return None
            return shift.id

        for shift in request.shifts:
            if shift.id in covered:
                continue
            if shift.date != entry.date or shift.site_id != entry.site_id:
                continue
            try:
                start, end = parse_hours_range(shift.working_hours)
            except ParseError:
                continue
            if (format_minutes(start), format_minutes(end)) == (entry.start_time, entry.end_time):
                return shift.id

        result.add_issue(
            PlanIssue(
                issue_type=PlanIssueType.UNMATCHED_BOOKING,
                message=(
                    f"Booking at {entry.site_id} {entry.start_time}-{entry.end_time} "
                    "matches no uncovered shift"
                ),
                floater_id=entry.floater_id,
                date_key=booking.date_key,
            )
        )
        return None
