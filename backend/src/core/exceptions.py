"""
Scheduling exceptions.

Validation and not-found errors are raised immediately at the boundary of
each service and are never retried. Conflicts are returned as typed results
by the ``try_*`` operations and raised as ``ConflictError`` by the plain
ones. ``SchedulingTimeoutError`` is the only error that is safe to retry.
"""

from typing import Any, Optional, Sequence


class SchedulingError(Exception):
    """Base class for all scheduling engine errors."""


class NotFoundError(SchedulingError):
    """A referenced provider, patient, appointment type or record does not exist."""


class ValidationError(SchedulingError, ValueError):
    """Input failed validation (bad time format, start >= end, bad rule, ...)."""


class ConflictError(SchedulingError):
    """
    A booking was rejected because its interval conflicts with the schedule.

    Attributes:
        result: The ConflictResult describing the first failed check
    """

    def __init__(self, result: Any, message: Optional[str] = None):
        self.result = result
        super().__init__(message or f"Booking conflict: {result.kind}")

    @property
    def kind(self) -> str:
        return self.result.kind


class SchedulingTimeoutError(SchedulingError):
    """The provider's exclusive booking section could not be acquired in time."""


class InvalidTransitionError(ValidationError):
    """A status change that the lifecycle does not allow."""


class PartialFailureError(SchedulingError):
    """
    A recurring series expansion finished with at least one failed occurrence.

    Committed occurrences are kept; ``outcomes`` holds the full per-occurrence
    result list so the caller can decide what to do next.
    """

    def __init__(self, outcomes: Sequence[Any]):
        self.outcomes = list(outcomes)
        failed = sum(1 for outcome in self.outcomes if outcome.status == "failed")
        super().__init__(f"{failed} of {len(self.outcomes)} occurrences failed")
