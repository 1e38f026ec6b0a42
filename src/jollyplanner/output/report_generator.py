"""Plain-text weekly roster report.

This module creates a text report of one week showing:
- Uncovered shifts still to staff
- Each planner's bookings per day, with daily and weekly totals
- Conflicting bookings, marked with "!"
- Who is absent on which day
"""

from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Union

from jollyplanner.domain.models import Schedule, UncoveredShift, Workforce
from jollyplanner.domain.timeutils import weekday_name
from jollyplanner.scheduling.coverage import absent_employees
from jollyplanner.validation.conflicts import detect_conflicts


class RosterReportGenerator:
    """Generates the weekly roster as text.

    Example:
        >>> generator = RosterReportGenerator()
        >>> print(generator.generate_to_string(week, store.planners(), workforce, shifts))
    """

    def __init__(self, width: int = 80):
        self.width = width

    def generate(
        self,
        week: list[date],
        planners: Iterable[Schedule],
        workforce: Workforce,
        output_path: Union[str, Path],
        shifts: Optional[list[UncoveredShift]] = None,
        conflicts: Optional[set[str]] = None,
    ) -> str:
        """Generate the report and save it to a file.

        Args:
            week: The seven dates of the week.
            planners: Planners in display order.
            workforce: Rosters, for site and employee names.
            output_path: Path to save the text file.
            shifts: Uncovered shifts to list (omitted if None).
            conflicts: Conflicting booking ids (computed if None).

        Returns:
            The generated text content.
        """
        content = self.generate_to_string(week, planners, workforce, shifts, conflicts)
        Path(output_path).write_text(content, encoding="utf-8")
        return content

    def generate_to_string(
        self,
        week: list[date],
        planners: Iterable[Schedule],
        workforce: Workforce,
        shifts: Optional[list[UncoveredShift]] = None,
        conflicts: Optional[set[str]] = None,
    ) -> str:
        """Generate the report and return it as a string."""
        planners = list(planners)
        if conflicts is None:
            conflicts = detect_conflicts(planners)
        site_names = {s.id: s.name for s in workforce.sites}

        lines = []
        lines.append("=" * self.width)
        lines.append(f"WEEKLY FLOATER ROSTER - {week[0].isoformat()} to {week[-1].isoformat()}")
        lines.append("=" * self.width)
        lines.append("")

        if shifts is not None:
            lines.extend(self._uncovered_section(shifts))

        lines.append("-" * self.width)
        lines.append("PLANNERS")
        lines.append("-" * self.width)
        for planner in planners:
            lines.extend(self._planner_section(planner, week, site_names, conflicts))

        lines.extend(self._absence_section(week, workforce))

        if conflicts:
            lines.append("")
            lines.append(f"! {len(conflicts)} bookings overlap another booking on the same day")
        lines.append("")
        return "\n".join(lines)

    def _uncovered_section(self, shifts: list[UncoveredShift]) -> list[str]:
        lines = ["-" * self.width, f"UNCOVERED SHIFTS ({len(shifts)})", "-" * self.width]
        if not shifts:
            lines.append("  None")
        for shift in shifts:
            lines.append(
                f"  {weekday_name(shift.date)[:3]} {shift.date_key}  "
                f"{shift.working_hours:<15} {shift.site_name[:24]:<24} "
                f"(for {shift.employee_name})"
            )
        lines.append("")
        return lines

    def _planner_section(
        self,
        planner: Schedule,
        week: list[date],
        site_names: dict[str, str],
        conflicts: set[str],
    ) -> list[str]:
        status = "" if planner.is_bound else " [unbound]"
        lines = [f"{planner.label}{status}  -  {planner.weekly_hours(week):.1f}h"]
        for day in week:
            bookings = sorted(planner.day(day), key=lambda a: (a.start_time, a.end_time))
            if not bookings:
                continue
            lines.append(
                f"  {weekday_name(day)[:3]} {day.isoformat()}  ({planner.day_hours(day):.1f}h)"
            )
            for booking in bookings:
                marker = "!" if booking.id in conflicts else " "
                site = site_names.get(booking.site_id, booking.site_id)
                lines.append(
                    f"    {marker} {booking.start_time}-{booking.end_time}  {site}"
                )
        if not any(planner.day(d) for d in week):
            lines.append("  (no bookings)")
        lines.append("")
        return lines

    def _absence_section(self, week: list[date], workforce: Workforce) -> list[str]:
        absences = absent_employees(
            week, workforce.employees, workforce.leave_requests, workforce.sickness_records
        )
        lines = ["-" * self.width, "ABSENCES", "-" * self.width]
        if not absences:
            lines.append("  None")
            return lines
        for employee_id, days in absences.items():
            employee = workforce.employee(employee_id)
            name = employee.name if employee else employee_id
            spans = ", ".join(
                f"{weekday_name(day)[:3]} {label}" for day, label in sorted(days.items())
            )
            lines.append(f"  {name[:24]:<24} {spans}")
        return lines
