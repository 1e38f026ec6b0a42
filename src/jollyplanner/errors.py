"""Error taxonomy for the planner core.

Read-only paths (coverage and conflict detection, reports) never raise these
for bad data; they skip the record. Store mutations and plan applications
raise them before any state is changed.
"""

from typing import Optional


class PlannerError(Exception):
    """Base class for every error raised by the planner core."""


class ParseError(PlannerError, ValueError):
    """A time or hours-range string could not be parsed.

    Attributes:
        value: The offending input.
    """

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.value = value


class ValidationError(PlannerError):
    """A required field is missing or invalid. Store state is unchanged."""


class NotFoundError(PlannerError):
    """A planner or assignment does not exist."""


class ConflictError(PlannerError):
    """The change collides with existing state.

    Attributes:
        existing_planner_id: Planner holding the conflicting binding, if any.
    """

    def __init__(self, message: str, existing_planner_id: Optional[str] = None):
        super().__init__(message)
        self.existing_planner_id = existing_planner_id


class WeekLockedError(ConflictError):
    """The target week is reserved by an in-flight delegated run."""


class CredentialError(PlannerError):
    """The delegated optimizer has no API key configured."""


class ExternalCallError(PlannerError):
    """The external optimizer was unreachable, timed out, or answered non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaError(PlannerError):
    """The external optimizer ran but its output failed validation.

    Attributes:
        issues: Human-readable descriptions of each violation.
    """

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        super().__init__(message)
        self.issues = list(issues or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        shown = "; ".join(self.issues[:5])
        more = f" (+{len(self.issues) - 5} more)" if len(self.issues) > 5 else ""
        return f"{base}: {shown}{more}"


class StaleStateError(PlannerError):
    """The planner store changed after a delegated request was issued."""

    def __init__(self, expected_version: int, actual_version: int):
        super().__init__(
            f"Planner store changed while the optimizer was running "
            f"(version {expected_version} -> {actual_version}); please retry"
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class RepositoryError(PlannerError):
    """The persistence backend failed to read or write schedules."""
