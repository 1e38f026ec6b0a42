"""Booking conflict detection.

Flags every pair of bookings in the same planner and day whose time ranges
overlap. Conflicts are surfaced for highlighting only; they never block a
save.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from jollyplanner.domain.models import Assignment, Schedule
from jollyplanner.errors import ParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingConflict:
    """Two overlapping bookings on the same planner and day."""

    planner_id: str
    date_key: str
    first_id: str
    second_id: str

    def __str__(self) -> str:
        return (
            f"Planner {self.planner_id} on {self.date_key}: "
            f"{self.first_id} overlaps {self.second_id}"
        )


def detect_conflicts(planners: Iterable[Schedule]) -> set[str]:
    """Ids of every booking that overlaps another on the same planner/day."""
    return ConflictDetector().detect(planners)


class ConflictDetector:
    """Line-sweep overlap detector over each planner's daily bookings.

    Bookings of one day are sorted by start time and swept while keeping the
    set of still-open bookings. Each new booking overlaps exactly the open
    bookings whose end lies after its start, so every overlapping pair is
    reported, including a long booking containing two shorter ones that do
    not overlap each other.

    Bookings with unparseable times are skipped: they cannot be verified, so
    they are assumed not to overlap anything.

    Example:
        >>> detector = ConflictDetector()
        >>> conflicting_ids = detector.detect(store.planners())
    """

    def detect(self, planners: Iterable[Schedule]) -> set[str]:
        """Get ids of all conflicting bookings.

        Args:
            planners: Planners to inspect.

        Returns:
            Set of booking ids involved in at least one overlap.
        """
        conflicting: set[str] = set()
        for conflict in self.find_conflicts(planners):
            conflicting.add(conflict.first_id)
            conflicting.add(conflict.second_id)
        return conflicting

    def find_conflicts(self, planners: Iterable[Schedule]) -> list[BookingConflict]:
        """Get every overlapping pair, in planner, day and start order."""
        conflicts = []
        for planner in planners:
            for day in sorted(planner.assignments):
                bookings = planner.assignments[day]
                if len(bookings) < 2:
                    continue
                for first_id, second_id in self._sweep(planner.id, day, bookings):
                    conflicts.append(
                        BookingConflict(
                            planner_id=planner.id,
                            date_key=day,
                            first_id=first_id,
                            second_id=second_id,
                        )
                    )
        return conflicts

    def _sweep(
        self,
        planner_id: str,
        day: str,
        bookings: Iterable[Assignment],
    ) -> list[tuple[str, str]]:
        """Overlapping (earlier, later) id pairs within one day."""
        intervals = []
        for booking in bookings:
            try:
                start, end = booking.minutes_range()
            except ParseError:
                logger.debug(
                    "Skipping booking %s on %s/%s: unparseable times",
                    booking.id, planner_id, day,
                )
                continue
            if end <= start:
                # Zero-length or inverted rows count for nothing
                continue
            intervals.append((start, end, booking.id))

        intervals.sort(key=lambda item: (item[0], item[1]))

        pairs = []
        active: list[tuple[int, str]] = []  # (end, id) of still-open bookings
        for start, end, booking_id in intervals:
            active = [(a_end, a_id) for a_end, a_id in active if a_end > start]
            for _, other_id in active:
                pairs.append((other_id, booking_id))
            active.append((end, booking_id))
        return pairs
