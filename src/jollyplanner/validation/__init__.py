"""Validation module for booking conflicts and optimizer plans."""

from jollyplanner.validation.conflicts import BookingConflict, ConflictDetector, detect_conflicts
from jollyplanner.validation.plan_validator import (
    PlanIssue,
    PlanIssueType,
    PlanValidationResult,
    PlanValidator,
)

__all__ = [
    "BookingConflict",
    "ConflictDetector",
    "PlanIssue",
    "PlanIssueType",
    "PlanValidationResult",
    "PlanValidator",
    "detect_conflicts",
]
