"""
Domain-specific exception hierarchy for the clinic scheduler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:
    from .models import ConflictReport


class SchedulingError(Exception):
    """Base class for all scheduling errors raised by the engine."""


class FormatError(SchedulingError, ValueError):
    """Raised when a time or date literal is malformed."""


class ValidationError(SchedulingError, ValueError):
    """Raised for well-formed input that breaks a semantic rule."""


class ScheduleValidationError(ValidationError):
    """Raised when a weekly schedule batch is rejected; lists every violation."""

    def __init__(self, violations: Sequence[str]):
        self.violations: List[str] = list(violations)
        super().__init__(
            f"Weekly schedule rejected with {len(self.violations)} violation(s): "
            + "; ".join(self.violations)
        )


class ConflictError(SchedulingError):
    """Raised when a booking overlaps an existing active appointment."""

    def __init__(self, report: "ConflictReport"):
        self.report = report
        super().__init__(report.message)


class PolicyError(SchedulingError):
    """Raised when a business rule rejects an otherwise valid request."""


class InvalidStateError(SchedulingError):
    """Raised when an appointment cannot move from its current status."""


class NotFoundError(SchedulingError):
    """Raised when a doctor, appointment or override is missing in the tenant."""
