"""Request and response shapes of the delegated optimizer.

The external service receives the week's uncovered shifts, the floaters and
the sites, and must answer with a JSON object of the form::

    {
      "assignments": {
        "<floater id>": {
          "YYYY-MM-DD": [
            {"shiftId": "...", "siteId": "...", "startTime": "HH:MM", "endTime": "HH:MM"}
          ]
        }
      },
      "unassigned": ["<shift id>", ...]
    }

A bare mapping of floater ids to dates (without the "assignments" wrapper)
is accepted as well, with no shift reported as unassigned.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from jollyplanner.domain.models import Employee, UncoveredShift, WorkSite
from jollyplanner.errors import SchemaError

GOALS = (
    "Minimize travel distance and time between each floater's home and the sites "
    "assigned to them; when a floater has several sites on the same day, group them "
    "geographically so the day forms a short route.",
    "Balance total weekly hours across floaters, counting the hours they already have booked.",
    "Give every uncovered shift exactly one assignment. List any shift you cannot "
    "cover in \"unassigned\".",
)

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


@dataclass
class OptimizerRequest:
    """Input handed to the external optimizer.

    Attributes:
        week: The seven dates of the planned week.
        shifts: Uncovered shifts to cover.
        floaters: Candidate floaters in roster order.
        sites: Site roster, for addresses.
        workload: Hours already booked this week per floater id.
    """

    week: list[date]
    shifts: list[UncoveredShift]
    floaters: list[Employee]
    sites: list[WorkSite]
    workload: dict[str, float] = field(default_factory=dict)

    @property
    def goals(self) -> tuple[str, ...]:
        return GOALS

    def shift(self, shift_id: str) -> Optional[UncoveredShift]:
        for shift in self.shifts:
            if shift.id == shift_id:
                return shift
        return None

    def to_payload(self) -> dict[str, Any]:
        """JSON-serializable input data."""
        return {
            "week": [d.isoformat() for d in self.week],
            "uncoveredShifts": [
                {
                    "id": s.id,
                    "date": s.date.isoformat(),
                    "siteId": s.site_id,
                    "siteName": s.site_name,
                    "absentEmployee": s.employee_name,
                    "workingHours": s.working_hours,
                }
                for s in self.shifts
            ],
            "floaters": [
                {
                    "id": f.id,
                    "name": f.name,
                    "address": f.address,
                    "bookedHours": round(self.workload.get(f.id, 0.0), 2),
                }
                for f in self.floaters
            ],
            "sites": [
                {"id": s.id, "name": s.name, "address": s.address}
                for s in self.sites
            ],
        }

    def render_prompt(self) -> str:
        """Full prompt text sent to the reasoning service."""
        goals = "\n".join(f"{i}. {goal}" for i, goal in enumerate(self.goals, 1))
        example = {
            "assignments": {
                "emp-3": {
                    "2024-06-10": [
                        {
                            "shiftId": "2024-06-10/site-1/emp-1",
                            "siteId": "site-1",
                            "startTime": "08:00",
                            "endTime": "12:00",
                        }
                    ]
                }
            },
            "unassigned": [],
        }
        return (
            "You are a logistics planner for a cleaning company. Build the weekly plan "
            "of the floater operators who cover shifts left open by absent staff.\n\n"
            f"Goals, in priority order:\n{goals}\n\n"
            "Input data:\n"
            f"{json.dumps(self.to_payload(), indent=2)}\n\n"
            "Answer with a single JSON object and nothing else. Use only the floater ids, "
            "site ids and shift ids given above, dates from the week above, and 24-hour "
            "HH:MM times. Example:\n"
            f"{json.dumps(example, indent=2)}\n"
        )


@dataclass(frozen=True)
class ProposedBooking:
    """One booking proposed by the optimizer."""

    floater_id: str
    date_key: str
    site_id: str
    start_time: str
    end_time: str
    shift_id: Optional[str] = None


@dataclass
class OptimizerResponse:
    """Structurally valid optimizer output, not yet checked against the roster.

    Attributes:
        bookings: Proposed bookings in response order.
        unassigned: Shift ids the optimizer reported it could not cover.
    """

    bookings: list[ProposedBooking] = field(default_factory=list)
    unassigned: list[str] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: Optional[str]) -> "OptimizerResponse":
        """Parse the raw service answer.

        Raises:
            SchemaError: If the text is empty, not JSON, or not shaped as expected.
        """
        if text is None or not text.strip():
            raise SchemaError("The optimizer returned an empty response")
        match = _FENCE_RE.match(text)
        if match:
            text = match.group(1)
        try:
            data = json.loads(text)
        except ValueError as e:
            raise SchemaError(f"The optimizer response is not valid JSON: {e}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> "OptimizerResponse":
        """Check the structure of decoded JSON.

        Raises:
            SchemaError: Listing every structural problem found.
        """
        if not isinstance(data, Mapping):
            raise SchemaError("The optimizer response must be a JSON object")

        if "assignments" in data:
            assignments = data["assignments"]
            unassigned = data.get("unassigned") or []
        else:
            assignments = data
            unassigned = []

        issues: list[str] = []
        if not isinstance(assignments, Mapping):
            raise SchemaError("\"assignments\" must be an object keyed by floater id")
        if not isinstance(unassigned, list) or not all(isinstance(i, str) for i in unassigned):
            issues.append("\"unassigned\" must be a list of shift ids")
            unassigned = []

        bookings = []
        for floater_id, days in assignments.items():
            if not isinstance(days, Mapping):
                issues.append(f"Floater {floater_id}: expected an object keyed by date")
                continue
            for day, items in days.items():
                if not isinstance(items, list):
                    issues.append(f"Floater {floater_id} on {day}: expected a list of bookings")
                    continue
                for index, item in enumerate(items):
                    booking = _parse_booking(floater_id, day, index, item, issues)
                    if booking is not None:
                        bookings.append(booking)

        if issues:
            raise SchemaError("The optimizer response is malformed", issues)
        return cls(bookings=bookings, unassigned=list(unassigned))

    @property
    def floater_ids(self) -> list[str]:
        seen = []
        for booking in self.bookings:
            if booking.floater_id not in seen:
                seen.append(booking.floater_id)
        return seen


def _parse_booking(
    floater_id: str,
    day: str,
    index: int,
    item: Any,
    issues: list[str],
) -> Optional[ProposedBooking]:
    where = f"Floater {floater_id} on {day}, booking {index + 1}"
    if not isinstance(item, Mapping):
        issues.append(f"{where}: expected an object")
        return None
    missing = [k for k in ("siteId", "startTime", "endTime") if not isinstance(item.get(k), str)]
    if missing:
        issues.append(f"{where}: missing or non-string {', '.join(missing)}")
        return None
    shift_id = item.get("shiftId")
    if shift_id is not None and not isinstance(shift_id, str):
        issues.append(f"{where}: shiftId must be a string")
        return None
    return ProposedBooking(
        floater_id=str(floater_id),
        date_key=str(day),
        site_id=item["siteId"],
        start_time=item["startTime"],
        end_time=item["endTime"],
        shift_id=shift_id,
    )


def build_request(
    week: Iterable[date],
    shifts: Iterable[UncoveredShift],
    floaters: Iterable[Employee],
    sites: Iterable[WorkSite],
    workload: Optional[Mapping[str, float]] = None,
) -> OptimizerRequest:
    return OptimizerRequest(
        week=list(week),
        shifts=list(shifts),
        floaters=list(floaters),
        sites=list(sites),
        workload=dict(workload or {}),
    )
