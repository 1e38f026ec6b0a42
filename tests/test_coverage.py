"""Tests for coverage gap detection."""

from datetime import date

import pytest

from jollyplanner.domain.models import (
    AbsenceStatus,
    AbsenceType,
    Employee,
    LeaveRequest,
    Role,
    SicknessRecord,
    SiteAssignment,
    WorkSite,
    Workforce,
)
from jollyplanner.domain.timeutils import week_dates
from jollyplanner.errors import ValidationError
from jollyplanner.scheduling.coverage import (
    CoverageGapDetector,
    absent_employees,
    detect_uncovered_shifts,
)

WEEK = week_dates(date(2024, 8, 5))


def _leave(employee_id, start, end, status=AbsenceStatus.APPROVED, request_id="lr-1"):
    return LeaveRequest(
        id=request_id,
        employee_id=employee_id,
        type=AbsenceType.HOLIDAY,
        start_date=start,
        end_date=end,
        status=status,
    )


class TestCoverageGapDetector:
    """Tests for CoverageGapDetector."""

    @pytest.fixture
    def employees(self):
        return [
            Employee("op-1", "Mario", "Rossi", Role.OPERATOR),
            Employee("op-2", "Luigi", "Verdi", Role.OPERATOR),
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("cl-1", "Carla", "Neri", Role.CLERK),
        ]

    @pytest.fixture
    def sites(self):
        return [
            WorkSite(
                "site-1",
                "Condominio Sole",
                assignments=[
                    SiteAssignment("op-1", "08:00 - 12:00", frozenset({"Monday", "Wednesday"})),
                    SiteAssignment("fl-1", "13:00 - 15:00", frozenset({"Monday"})),
                ],
            ),
            WorkSite(
                "site-2",
                "Uffici Futura",
                assignments=[
                    SiteAssignment("op-1", "14:00 - 16:00", frozenset({"Wednesday"})),
                    SiteAssignment("op-2", "07:00 - 11:00", frozenset({"Friday"})),
                ],
            ),
        ]

    def test_weekday_match_yields_one_shift_per_working_day(self, employees, sites):
        """Test a full-week leave on a Mon/Wed assignment yields 2 shifts, not 7."""
        site = WorkSite(
            "site-9",
            "Magazzino",
            assignments=[
                SiteAssignment("op-1", "08:00 - 12:00", frozenset({"Monday", "Wednesday"}))
            ],
        )
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 11))

        shifts = detect_uncovered_shifts(WEEK, employees, [leave], [], [site])

        assert len(shifts) == 2
        assert [s.date for s in shifts] == [date(2024, 8, 5), date(2024, 8, 7)]
        assert all(s.working_hours == "08:00 - 12:00" for s in shifts)

    def test_shift_fields(self, employees, sites):
        """Test shifts carry site, absent employee and recurring hours."""
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 5))

        shifts = detect_uncovered_shifts(WEEK, employees, [leave], [], sites)

        assert len(shifts) == 1
        shift = shifts[0]
        assert shift.id == "2024-08-05/site-1/op-1"
        assert shift.site_id == "site-1"
        assert shift.site_name == "Condominio Sole"
        assert shift.employee_id == "op-1"
        assert shift.employee_name == "Mario Rossi"
        assert shift.working_hours == "08:00 - 12:00"

    def test_output_order(self, employees, sites):
        """Test order follows absence, then date, then site assignment."""
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 9))
        sickness = SicknessRecord("s-1", "op-2", date(2024, 8, 9), date(2024, 8, 9))

        shifts = detect_uncovered_shifts(WEEK, employees, [leave], [sickness], sites)

        assert [s.id for s in shifts] == [
            "2024-08-05/site-1/op-1",
            "2024-08-07/site-1/op-1",
            "2024-08-07/site-2/op-1",
            "2024-08-09/site-2/op-2",
        ]

    def test_pending_and_rejected_leave_ignored(self, employees, sites):
        """Test only approved leave affects coverage."""
        leaves = [
            _leave("op-1", date(2024, 8, 5), date(2024, 8, 9), AbsenceStatus.PENDING, "lr-1"),
            _leave("op-1", date(2024, 8, 5), date(2024, 8, 9), AbsenceStatus.REJECTED, "lr-2"),
        ]
        assert detect_uncovered_shifts(WEEK, employees, leaves, [], sites) == []

    def test_sickness_always_counts(self, employees, sites):
        """Test sickness records need no approval."""
        sickness = SicknessRecord("s-1", "op-1", date(2024, 8, 5), date(2024, 8, 5))
        shifts = detect_uncovered_shifts(WEEK, employees, [], [sickness], sites)
        assert len(shifts) == 1

    def test_non_operators_never_generate_shifts(self, employees, sites):
        """Test floater and clerk absences produce no uncovered shifts."""
        leaves = [
            _leave("fl-1", date(2024, 8, 5), date(2024, 8, 11), request_id="lr-1"),
            _leave("cl-1", date(2024, 8, 5), date(2024, 8, 11), request_id="lr-2"),
        ]
        assert detect_uncovered_shifts(WEEK, employees, leaves, [], sites) == []

    def test_absence_outside_week_ignored(self, employees, sites):
        leave = _leave("op-1", date(2024, 7, 1), date(2024, 7, 31))
        assert detect_uncovered_shifts(WEEK, employees, [leave], [], sites) == []

    def test_absence_partially_in_week(self, employees, sites):
        """Test only the dates inside both the absence and the week count."""
        leave = _leave("op-1", date(2024, 8, 1), date(2024, 8, 6))
        shifts = detect_uncovered_shifts(WEEK, employees, [leave], [], sites)
        assert [s.id for s in shifts] == ["2024-08-05/site-1/op-1"]

    def test_overlapping_absences_not_deduplicated(self, employees, sites):
        """Test overlapping leave and sickness yield the shift twice, with distinct ids."""
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 5))
        sickness = SicknessRecord("s-1", "op-1", date(2024, 8, 5), date(2024, 8, 5))

        shifts = detect_uncovered_shifts(WEEK, employees, [leave], [sickness], sites)

        assert len(shifts) == 2
        assert shifts[0].id == "2024-08-05/site-1/op-1"
        assert shifts[1].id == "2024-08-05/site-1/op-1#2"
        assert shifts[0].site_id == shifts[1].site_id

    def test_unknown_employee_skipped(self, employees, sites):
        """Test absences of unknown employees are skipped, not raised."""
        leave = _leave("ghost", date(2024, 8, 5), date(2024, 8, 9))
        assert detect_uncovered_shifts(WEEK, employees, [leave], [], sites) == []

    def test_detect_for_workforce(self, employees, sites):
        workforce = Workforce(
            employees=employees,
            sites=sites,
            leave_requests=[_leave("op-2", date(2024, 8, 9), date(2024, 8, 9))],
        )
        shifts = CoverageGapDetector().detect_for_workforce(WEEK, workforce)
        assert [s.id for s in shifts] == ["2024-08-09/site-2/op-2"]

    def test_duplicate_site_assignment_rejected(self):
        """Test a site cannot hold two assignments for the same employee."""
        with pytest.raises(ValidationError):
            WorkSite(
                "site-1",
                "Dup",
                assignments=[
                    SiteAssignment("op-1", "08:00 - 12:00", frozenset({"Monday"})),
                    SiteAssignment("op-1", "14:00 - 16:00", frozenset({"Friday"})),
                ],
            )


class TestAbsentEmployees:
    """Tests for the weekly absence summary."""

    def test_labels_and_roles(self):
        """Test every role is listed, with leave type or sickness label."""
        employees = [
            Employee("op-1", "Mario", "Rossi", Role.OPERATOR),
            Employee("fl-1", "Anna", "Bianchi", Role.FLOATER),
            Employee("op-2", "Luigi", "Verdi", Role.OPERATOR),
        ]
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 6))
        sickness = SicknessRecord("s-1", "fl-1", date(2024, 8, 11), date(2024, 8, 20))

        result = absent_employees(WEEK, employees, [leave], [sickness])

        assert list(result) == ["op-1", "fl-1"]
        assert result["op-1"] == {date(2024, 8, 5): "Holiday", date(2024, 8, 6): "Holiday"}
        assert result["fl-1"] == {date(2024, 8, 11): "Sickness"}

    def test_pending_leave_not_listed(self):
        employees = [Employee("op-1", "Mario", "Rossi", Role.OPERATOR)]
        leave = _leave("op-1", date(2024, 8, 5), date(2024, 8, 6), AbsenceStatus.PENDING)
        assert absent_employees(WEEK, employees, [leave], []) == {}
