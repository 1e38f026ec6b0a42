"""Domain models for the floater planning system.

This module contains the core records used throughout the planner: the
employee and site rosters consumed from the CRUD layer, absence records,
the weekly floater schedules ("planners") and the derived uncovered shifts.

Dictionary conversions use the camelCase keys of the stored data shape.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Iterable, Optional, Union

from jollyplanner.domain.timeutils import (
    WEEKDAY_NAMES,
    DateLike,
    date_key,
    hours_between,
    parse_time,
    to_date,
)
from jollyplanner.errors import ValidationError


class Role(Enum):
    """Employee roles. Only operators and floaters take part in scheduling."""

    OPERATOR = "Operator"  # Fixed recurring site assignments
    FLOATER = "Floater"  # "Jolly": covers shifts of absent operators
    CLERK = "Clerk"  # Office staff, never on site


class ContractType(Enum):
    """Employment contract kind."""

    PERMANENT = "Permanent"
    FIXED_TERM = "Fixed Term"


class SiteStatus(Enum):
    """Lifecycle state of a work site."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    SUSPENDED = "Suspended"


class AbsenceStatus(Enum):
    """Approval state of a leave request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class AbsenceType(Enum):
    """Kind of leave requested."""

    HOLIDAY = "Holiday"
    PERMIT = "Permit"
    CHILD_SICKNESS = "Child Sickness"
    OTHER = "Other"


def _optional_date(value: Optional[DateLike]) -> Optional[date]:
    if value in (None, ""):
        return None
    return to_date(value)


def _optional_iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Employee:
    """An employee from the roster.

    Attributes:
        id: Unique identifier.
        first_name: Given name.
        last_name: Family name.
        role: Scheduling role.
        address: Home address, only used as a distance lookup key.
        contract_type: Kind of contract.
        start_date: Contract start.
        end_date: Contract end, None for open-ended contracts.
        medical_visit_expiry: Date the medical fitness certificate expires.
        phone: Contact phone number.
        email: Contact email.
        notes: Free text.
    """

    id: str
    first_name: str
    last_name: str
    role: Role
    address: str = ""
    contract_type: ContractType = ContractType.PERMANENT
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    medical_visit_expiry: Optional[date] = None
    phone: str = ""
    email: str = ""
    notes: str = ""

    @property
    def name(self) -> str:
        """Display name."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_floater(self) -> bool:
        return self.role == Role.FLOATER

    @property
    def is_operator(self) -> bool:
        return self.role == Role.OPERATOR

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Employee":
        return cls(
            id=str(data["id"]),
            first_name=data.get("firstName", ""),
            last_name=data.get("lastName", ""),
            role=Role(data["role"]),
            address=data.get("address", ""),
            contract_type=ContractType(data.get("contractType", ContractType.PERMANENT.value)),
            start_date=_optional_date(data.get("startDate")),
            end_date=_optional_date(data.get("endDate")),
            medical_visit_expiry=_optional_date(data.get("medicalVisitExpiry")),
            phone=data.get("phone", ""),
            email=data.get("email", ""),
            notes=data.get("notes", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role.value,
            "address": self.address,
            "contractType": self.contract_type.value,
            "startDate": _optional_iso(self.start_date),
            "endDate": _optional_iso(self.end_date),
            "medicalVisitExpiry": _optional_iso(self.medical_visit_expiry),
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class SiteAssignment:
    """Recurring weekly commitment of one regular employee to one site.

    Attributes:
        employee_id: The regular employee.
        working_hours: "HH:MM - HH:MM" range worked on each working day.
        working_days: English weekday names ("Monday" .. "Sunday").
    """

    employee_id: str
    working_hours: str
    working_days: frozenset[str] = frozenset()

    def works_on(self, weekday: str) -> bool:
        """Check if the assignment recurs on a weekday name."""
        return weekday in self.working_days

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteAssignment":
        return cls(
            employee_id=str(data["employeeId"]),
            working_hours=data.get("workingHours", ""),
            working_days=frozenset(data.get("workingDays", [])),
        )

    def to_dict(self, day_order: Optional[Iterable[str]] = None) -> dict[str, Any]:
        order = list(day_order or WEEKDAY_NAMES)
        days = sorted(self.working_days, key=lambda d: order.index(d) if d in order else len(order))
        return {
            "employeeId": self.employee_id,
            "workingHours": self.working_hours,
            "workingDays": days,
        }


@dataclass
class WorkSite:
    """A client site with its recurring staff assignments.

    At most one SiteAssignment may exist per (site, employee) pair.
    """

    id: str
    name: str
    address: str = ""
    client: str = ""
    status: SiteStatus = SiteStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    assignments: list[SiteAssignment] = field(default_factory=list)

    def __post_init__(self):
        seen = set()
        for assignment in self.assignments:
            if assignment.employee_id in seen:
                raise ValidationError(
                    f"Site {self.id} has more than one assignment for employee "
                    f"{assignment.employee_id}"
                )
            seen.add(assignment.employee_id)

    def assignment_for(self, employee_id: str) -> Optional[SiteAssignment]:
        """Get the recurring assignment of an employee at this site, if any."""
        for assignment in self.assignments:
            if assignment.employee_id == employee_id:
                return assignment
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkSite":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            address=data.get("address", ""),
            client=data.get("client", ""),
            status=SiteStatus(data.get("status", SiteStatus.ACTIVE.value)),
            start_date=_optional_date(data.get("startDate")),
            end_date=_optional_date(data.get("endDate")),
            assignments=[SiteAssignment.from_dict(a) for a in data.get("assignments", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "client": self.client,
            "status": self.status.value,
            "startDate": _optional_iso(self.start_date),
            "endDate": _optional_iso(self.end_date),
            "assignments": [a.to_dict() for a in self.assignments],
        }


@dataclass
class LeaveRequest:
    """A leave request. Only approved requests affect coverage."""

    id: str
    employee_id: str
    type: AbsenceType
    start_date: date
    end_date: date
    status: AbsenceStatus = AbsenceStatus.PENDING
    reason: str = ""

    @property
    def affects_coverage(self) -> bool:
        return self.status == AbsenceStatus.APPROVED

    def covers(self, day: date) -> bool:
        """Check if a day falls within [start_date, end_date]."""
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaveRequest":
        return cls(
            id=str(data["id"]),
            employee_id=str(data["employeeId"]),
            type=AbsenceType(data.get("type", AbsenceType.OTHER.value)),
            start_date=to_date(data["startDate"]),
            end_date=to_date(data["endDate"]),
            status=AbsenceStatus(data.get("status", AbsenceStatus.PENDING.value)),
            reason=data.get("reason", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "employeeId": self.employee_id,
            "type": self.type.value,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "status": self.status.value,
            "reason": self.reason,
        }


@dataclass
class SicknessRecord:
    """A sickness absence. Always affects coverage, there is no approval step."""

    id: str
    employee_id: str
    start_date: date
    end_date: date
    notes: str = ""

    @property
    def affects_coverage(self) -> bool:
        return True

    def covers(self, day: date) -> bool:
        """Check if a day falls within [start_date, end_date]."""
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SicknessRecord":
        return cls(
            id=str(data["id"]),
            employee_id=str(data["employeeId"]),
            start_date=to_date(data["startDate"]),
            end_date=to_date(data["endDate"]),
            notes=data.get("notes", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "employeeId": self.employee_id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "notes": self.notes,
        }


Absence = Union[LeaveRequest, SicknessRecord]


@dataclass(frozen=True)
class Assignment:
    """A concrete one-day booking of a floater to a site.

    Attributes:
        id: Unique identifier of this booking instance.
        site_id: Booked site.
        start_time: "HH:MM" start.
        end_time: "HH:MM" end (exclusive).
    """

    id: str
    site_id: str
    start_time: str
    end_time: str

    @property
    def hours(self) -> float:
        """Booked hours, 0 for malformed or inverted times."""
        return hours_between(self.start_time, self.end_time)

    def minutes_range(self) -> tuple[int, int]:
        """(start, end) in minutes from midnight. Raises ParseError if malformed."""
        return parse_time(self.start_time), parse_time(self.end_time)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Assignment":
        return cls(
            id=str(data["id"]),
            site_id=str(data["siteId"]),
            start_time=data["startTime"],
            end_time=data["endTime"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "siteId": self.site_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


@dataclass(frozen=True)
class Bound:
    """Planner bound to a floater."""

    floater_id: str


@dataclass(frozen=True)
class Unbound:
    """Manually created planner not yet bound to a floater."""


UNBOUND = Unbound()

PlannerBinding = Union[Bound, Unbound]


@dataclass(frozen=True)
class Schedule:
    """Weekly assignment grid of one floater, or of an unbound manual planner.

    Instances are immutable: every change produces a new Schedule, so lists a
    reader is iterating are never modified underneath it.

    Attributes:
        id: Unique identifier.
        employee_id: Bound floater, or None for an unbound manual planner.
        label: Display label.
        assignments: ISO date string -> ordered bookings on that day.
    """

    id: str
    employee_id: Optional[str]
    label: str
    assignments: dict[str, tuple[Assignment, ...]] = field(default_factory=dict)

    def __post_init__(self):
        normalized = {
            date_key(day): tuple(items)
            for day, items in self.assignments.items()
        }
        object.__setattr__(self, "assignments", normalized)

    @property
    def binding(self) -> PlannerBinding:
        if self.employee_id is None:
            return UNBOUND
        return Bound(self.employee_id)

    @property
    def is_bound(self) -> bool:
        return self.employee_id is not None

    def day(self, day: DateLike) -> tuple[Assignment, ...]:
        """Bookings on a date (empty tuple if none)."""
        return self.assignments.get(date_key(day), ())

    def find(self, day: DateLike, assignment_id: str) -> Optional[Assignment]:
        """Find a booking by id on a date."""
        for assignment in self.day(day):
            if assignment.id == assignment_id:
                return assignment
        return None

    def with_day(self, day: DateLike, items: Iterable[Assignment]) -> "Schedule":
        """Return a copy with the bookings of one date replaced."""
        assignments = dict(self.assignments)
        items = tuple(items)
        key = date_key(day)
        if items:
            assignments[key] = items
        else:
            assignments.pop(key, None)
        return replace(self, assignments=assignments)

    def with_binding(self, employee_id: Optional[str], label: Optional[str] = None) -> "Schedule":
        """Return a copy bound to another floater (or unbound)."""
        return replace(
            self,
            employee_id=employee_id,
            label=self.label if label is None else label,
        )

    def day_hours(self, day: DateLike) -> float:
        """Total booked hours on one date."""
        return sum(a.hours for a in self.day(day))

    def weekly_hours(self, week: Iterable[DateLike]) -> float:
        """Total booked hours over the given dates."""
        return sum(self.day_hours(d) for d in week)

    @property
    def assignment_count(self) -> int:
        return sum(len(items) for items in self.assignments.values())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Schedule":
        employee_id = data.get("employeeId")
        return cls(
            id=str(data["id"]),
            employee_id=str(employee_id) if employee_id is not None else None,
            label=data.get("label", ""),
            assignments={
                day: tuple(Assignment.from_dict(a) for a in items)
                for day, items in (data.get("assignments") or {}).items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "employeeId": self.employee_id,
            "label": self.label,
            "assignments": {
                day: [a.to_dict() for a in items]
                for day, items in sorted(self.assignments.items())
            },
        }


@dataclass(frozen=True)
class UncoveredShift:
    """A recurring site commitment left without staff by an absent operator.

    Derived on every read, never persisted.

    Attributes:
        id: Identifier unique within one detection run.
        date: Day of the missing shift.
        site_id: Site to be covered.
        site_name: Site display name.
        employee_id: The absent operator.
        employee_name: The absent operator's display name.
        working_hours: Recurring "HH:MM - HH:MM" range to cover.
    """

    id: str
    date: date
    site_id: str
    site_name: str
    employee_id: str
    employee_name: str
    working_hours: str

    @property
    def date_key(self) -> str:
        return self.date.isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "siteId": self.site_id,
            "siteName": self.site_name,
            "employeeId": self.employee_id,
            "employeeName": self.employee_name,
            "workingHours": self.working_hours,
        }


@dataclass
class Workforce:
    """Read-only snapshot of the rosters consumed by the scheduling core.

    Attributes:
        employees: Employee roster, in roster order.
        sites: Work sites with their recurring assignments.
        leave_requests: Leave requests (any status).
        sickness_records: Sickness records.
    """

    employees: list[Employee] = field(default_factory=list)
    sites: list[WorkSite] = field(default_factory=list)
    leave_requests: list[LeaveRequest] = field(default_factory=list)
    sickness_records: list[SicknessRecord] = field(default_factory=list)

    @property
    def floaters(self) -> list[Employee]:
        """Floater employees in roster order."""
        return [e for e in self.employees if e.is_floater]

    def employee(self, employee_id: str) -> Optional[Employee]:
        for employee in self.employees:
            if employee.id == employee_id:
                return employee
        return None

    def site(self, site_id: str) -> Optional[WorkSite]:
        for site in self.sites:
            if site.id == site_id:
                return site
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Workforce":
        return cls(
            employees=[Employee.from_dict(e) for e in data.get("employees", [])],
            sites=[WorkSite.from_dict(s) for s in data.get("sites", [])],
            leave_requests=[LeaveRequest.from_dict(r) for r in data.get("leaveRequests", [])],
            sickness_records=[
                SicknessRecord.from_dict(r) for r in data.get("sicknessRecords", [])
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "employees": [e.to_dict() for e in self.employees],
            "sites": [s.to_dict() for s in self.sites],
            "leaveRequests": [r.to_dict() for r in self.leave_requests],
            "sicknessRecords": [r.to_dict() for r in self.sickness_records],
        }
