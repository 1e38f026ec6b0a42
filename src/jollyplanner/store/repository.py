"""Schedule persistence.

The planner core only talks to the ScheduleRepository interface; whether the
backend is an in-memory dict, a JSON file or a remote database is up to the
caller. Every write overwrites the whole record, so retrying a save or create
with the same id is harmless.
"""

import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from jollyplanner.domain.models import Schedule
from jollyplanner.errors import NotFoundError, RepositoryError

logger = logging.getLogger(__name__)


def new_schedule_id() -> str:
    return f"schedule-{uuid.uuid4().hex[:12]}"


class ScheduleRepository(ABC):
    """Abstract base class for schedule storage."""

    @abstractmethod
    def get(self, schedule_id: str) -> Optional[Schedule]:
        """Get a schedule by id, or None if absent."""
        pass

    @abstractmethod
    def all(self) -> list[Schedule]:
        """All stored schedules, in creation order."""
        pass

    @abstractmethod
    def create(self, schedule: Schedule) -> Schedule:
        """Store a new schedule.

        A schedule without an id gets one assigned. Creating an id that
        already exists overwrites it.

        Returns:
            The stored schedule, with its final id.
        """
        pass

    @abstractmethod
    def save(self, schedule_id: str, schedule: Schedule) -> Schedule:
        """Overwrite an existing schedule.

        Raises:
            NotFoundError: If no schedule has this id.
        """
        pass

    @abstractmethod
    def delete(self, schedule_id: str) -> None:
        """Delete a schedule. Deleting a missing id is a no-op."""
        pass


class InMemoryScheduleRepository(ScheduleRepository):
    """Repository keeping schedules in a dict. Used by tests and demos."""

    def __init__(self, schedules: Optional[list[Schedule]] = None):
        self._schedules: dict[str, Schedule] = {}
        for schedule in schedules or []:
            self._schedules[schedule.id] = schedule

    def get(self, schedule_id: str) -> Optional[Schedule]:
        return self._schedules.get(schedule_id)

    def all(self) -> list[Schedule]:
        return list(self._schedules.values())

    def create(self, schedule: Schedule) -> Schedule:
        if not schedule.id:
            schedule = Schedule(
                id=new_schedule_id(),
                employee_id=schedule.employee_id,
                label=schedule.label,
                assignments=schedule.assignments,
            )
        self._schedules[schedule.id] = schedule
        return schedule

    def save(self, schedule_id: str, schedule: Schedule) -> Schedule:
        if schedule_id not in self._schedules:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        self._schedules[schedule_id] = schedule
        return schedule

    def delete(self, schedule_id: str) -> None:
        if self._schedules.pop(schedule_id, None) is None:
            logger.debug("Schedule %s not found for deletion", schedule_id)


class JsonFileScheduleRepository(ScheduleRepository):
    """Repository storing every schedule in one JSON document.

    The file is read on every call and rewritten (via a temporary file and
    an atomic rename) on every change. A missing file means no schedules.

    Document shape::

        {"schedules": [{"id": ..., "employeeId": ..., "label": ...,
                        "assignments": {"YYYY-MM-DD": [...]}}]}
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def get(self, schedule_id: str) -> Optional[Schedule]:
        for schedule in self._load():
            if schedule.id == schedule_id:
                return schedule
        return None

    def all(self) -> list[Schedule]:
        return self._load()

    def create(self, schedule: Schedule) -> Schedule:
        if not schedule.id:
            schedule = Schedule(
                id=new_schedule_id(),
                employee_id=schedule.employee_id,
                label=schedule.label,
                assignments=schedule.assignments,
            )
        schedules = [s for s in self._load() if s.id != schedule.id]
        schedules.append(schedule)
        self._dump(schedules)
        return schedule

    def save(self, schedule_id: str, schedule: Schedule) -> Schedule:
        schedules = self._load()
        for index, existing in enumerate(schedules):
            if existing.id == schedule_id:
                schedules[index] = schedule
                self._dump(schedules)
                return schedule
        raise NotFoundError(f"Schedule {schedule_id} not found in {self.path}")

    def delete(self, schedule_id: str) -> None:
        schedules = self._load()
        remaining = [s for s in schedules if s.id != schedule_id]
        if len(remaining) == len(schedules):
            logger.debug("Schedule %s not found for deletion in %s", schedule_id, self.path)
            return
        self._dump(remaining)

    def _load(self) -> list[Schedule]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            return [Schedule.from_dict(item) for item in data.get("schedules", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise RepositoryError(f"Cannot read schedules from {self.path}: {e}")

    def _dump(self, schedules: list[Schedule]) -> None:
        payload = {"schedules": [s.to_dict() for s in schedules]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix=".tmp"
            )
        except OSError as e:
            raise RepositoryError(f"Cannot write schedules to {self.path}: {e}")
        replaced = False
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
            replaced = True
        except OSError as e:
            raise RepositoryError(f"Cannot write schedules to {self.path}: {e}")
        finally:
            if not replaced and os.path.exists(tmp_name):
                os.unlink(tmp_name)
