"""Coverage gap detection for the displayed week.

This module works out which recurring site shifts are left without staff
because their regular operator is on approved leave or off sick.
"""

import logging
from collections import Counter
from datetime import date
from typing import Iterable, Optional

from jollyplanner.domain.models import (
    Absence,
    Employee,
    LeaveRequest,
    SicknessRecord,
    UncoveredShift,
    WorkSite,
    Workforce,
)
from jollyplanner.domain.timeutils import DateLike, to_date, weekday_name

logger = logging.getLogger(__name__)

SICKNESS_LABEL = "Sickness"


def detect_uncovered_shifts(
    week: Iterable[DateLike],
    employees: Iterable[Employee],
    leave_requests: Iterable[LeaveRequest],
    sickness_records: Iterable[SicknessRecord],
    sites: Iterable[WorkSite],
) -> list[UncoveredShift]:
    """Detect uncovered shifts for a week.

    Shorthand for CoverageGapDetector().detect(...).
    """
    return CoverageGapDetector().detect(
        week, employees, leave_requests, sickness_records, sites
    )


class CoverageGapDetector:
    """Produces the uncovered shifts of a week.

    For every absence that affects coverage (approved leave or any sickness
    record) of an Operator, and every week date inside the absence, each
    recurring site assignment of that operator on that weekday becomes one
    UncoveredShift. Output follows absence order, then date order, then site
    assignment order. Nothing is deduplicated: an operator with overlapping
    leave and sickness records yields the same shift twice.

    Records pointing at unknown employees are skipped, never raised.
    """

    def detect(
        self,
        week: Iterable[DateLike],
        employees: Iterable[Employee],
        leave_requests: Iterable[LeaveRequest],
        sickness_records: Iterable[SicknessRecord],
        sites: Iterable[WorkSite],
    ) -> list[UncoveredShift]:
        """Detect uncovered shifts.

        Args:
            week: Dates of the displayed week.
            employees: Employee roster.
            leave_requests: Leave requests of any status.
            sickness_records: Sickness records.
            sites: Sites with their recurring assignments.

        Returns:
            UncoveredShift list in detection order.
        """
        dates = [to_date(d) for d in week]
        employees_by_id = {e.id: e for e in employees}
        sites = list(sites)

        absences: list[Absence] = [*leave_requests, *sickness_records]

        shifts = []
        seen_ids: Counter = Counter()
        for absence in absences:
            if not absence.affects_coverage:
                continue

            employee = employees_by_id.get(absence.employee_id)
            if employee is None:
                logger.debug(
                    "Skipping absence %s: unknown employee %s",
                    getattr(absence, "id", "?"),
                    absence.employee_id,
                )
                continue
            if not employee.is_operator:
                continue

            for day in dates:
                if not absence.covers(day):
                    continue
                for shift in self._shifts_for_day(employee, day, sites):
                    seen_ids[shift.id] += 1
                    if seen_ids[shift.id] > 1:
                        shift = UncoveredShift(
                            id=f"{shift.id}#{seen_ids[shift.id]}",
                            date=shift.date,
                            site_id=shift.site_id,
                            site_name=shift.site_name,
                            employee_id=shift.employee_id,
                            employee_name=shift.employee_name,
                            working_hours=shift.working_hours,
                        )
                    shifts.append(shift)

        return shifts

    def detect_for_workforce(
        self,
        week: Iterable[DateLike],
        workforce: Workforce,
    ) -> list[UncoveredShift]:
        """Detect uncovered shifts from a Workforce snapshot."""
        return self.detect(
            week,
            workforce.employees,
            workforce.leave_requests,
            workforce.sickness_records,
            workforce.sites,
        )

    def _shifts_for_day(
        self,
        employee: Employee,
        day: date,
        sites: list[WorkSite],
    ) -> list[UncoveredShift]:
        """Recurring assignments of an employee falling on a given day."""
        weekday = weekday_name(day)
        result = []
        for site in sites:
            for assignment in site.assignments:
                if assignment.employee_id != employee.id:
                    continue
                if not assignment.works_on(weekday):
                    continue
                result.append(
                    UncoveredShift(
                        id=f"{day.isoformat()}/{site.id}/{employee.id}",
                        date=day,
                        site_id=site.id,
                        site_name=site.name,
                        employee_id=employee.id,
                        employee_name=employee.name,
                        working_hours=assignment.working_hours,
                    )
                )
        return result


def absent_employees(
    week: Iterable[DateLike],
    employees: Iterable[Employee],
    leave_requests: Iterable[LeaveRequest],
    sickness_records: Iterable[SicknessRecord],
) -> dict[str, dict[date, str]]:
    """Who is away on which day of the week, for any role.

    Approved leave wins over sickness when both cover the same day.

    Returns:
        Employee id -> {date: absence label}, only for employees absent at
        least once in the week, in roster order.
    """
    dates = [to_date(d) for d in week]
    leave_requests = [r for r in leave_requests if r.affects_coverage]
    sickness_records = list(sickness_records)

    result: dict[str, dict[date, str]] = {}
    for employee in employees:
        days: dict[date, str] = {}
        for day in dates:
            label = _absence_label(employee.id, day, leave_requests, sickness_records)
            if label is not None:
                days[day] = label
        if days:
            result[employee.id] = days
    return result


def _absence_label(
    employee_id: str,
    day: date,
    leave_requests: list[LeaveRequest],
    sickness_records: list[SicknessRecord],
) -> Optional[str]:
    for request in leave_requests:
        if request.employee_id == employee_id and request.covers(day):
            return request.type.value
    for record in sickness_records:
        if record.employee_id == employee_id and record.covers(day):
            return SICKNESS_LABEL
    return None
