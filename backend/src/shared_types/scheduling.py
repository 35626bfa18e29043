"""
Shared types for scheduling functionality.

This module contains the data classes passed between the availability store,
slot generator, conflict detector, booking coordinator and recurring series
expander, so that the pure parts of the engine can be exercised without a
database session.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from core.exceptions import PartialFailureError
from utils.datetime_utils import clinic_now
from utils.interval_utils import Interval


@dataclass
class SlotData:
    """
    Represents an available time slot.

    ``end`` is the end of the appointment itself; the buffer that follows it
    is implied by the appointment type and is not part of the slot.
    """
    start: datetime
    end: datetime

    @property
    def start_time(self) -> str:
        return self.start.strftime("%H:%M")

    @property
    def end_time(self) -> str:
        return self.end.strftime("%H:%M")

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary format."""
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


# ---------------------------------------------------------------------------
# Schedule snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LeaveBlock:
    leave_id: int
    interval: Interval
    all_day: bool


@dataclass(frozen=True)
class BreakBlock:
    break_rule_id: int
    interval: Interval


@dataclass(frozen=True)
class BookingBlock:
    """A ledger booking's occupied interval (appointment plus buffer)."""
    booking_id: int
    interval: Interval


@dataclass
class ScheduleSnapshot:
    """
    Everything that decides whether an interval is bookable on one date.

    Read once per date by the availability store and consumed by the pure
    slot iteration and conflict evaluation functions.
    """
    provider_id: int
    date: date
    window: Optional[Interval]
    window_from_exception: bool = False
    leave_blocks: List[LeaveBlock] = field(default_factory=list)
    break_blocks: List[BreakBlock] = field(default_factory=list)
    booking_blocks: List[BookingBlock] = field(default_factory=list)

    @property
    def has_all_day_leave(self) -> bool:
        return any(block.all_day for block in self.leave_blocks)


# ---------------------------------------------------------------------------
# Conflict results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConflictResult:
    """Outcome of a conflict check. Subclasses name the first failed check."""
    kind: ClassVar[str] = "none"

    @property
    def has_conflict(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class NoConflict(ConflictResult):
    kind: ClassVar[str] = "none"

    @property
    def has_conflict(self) -> bool:
        return False


@dataclass(frozen=True)
class OutsideWorkingHours(ConflictResult):
    kind: ClassVar[str] = "outside_working_hours"


@dataclass(frozen=True)
class OnApprovedLeave(ConflictResult):
    leave_id: int
    kind: ClassVar[str] = "on_approved_leave"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "leave_id": self.leave_id}


@dataclass(frozen=True)
class DuringBreak(ConflictResult):
    break_rule_id: int
    kind: ClassVar[str] = "during_break"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "break_rule_id": self.break_rule_id}


@dataclass(frozen=True)
class OverlapsBooking(ConflictResult):
    conflicting_id: int
    kind: ClassVar[str] = "overlaps_booking"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "conflicting_id": self.conflicting_id}


@dataclass(frozen=True)
class Timeout:
    """The provider's exclusive section was not acquired in time."""
    kind: ClassVar[str] = "timeout"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


RejectionReason = Union[ConflictResult, Timeout]


# ---------------------------------------------------------------------------
# Booking attempts
# ---------------------------------------------------------------------------

class AttemptState(Enum):
    REQUESTED = "requested"
    VALIDATED = "validated"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class BookingAttempt:
    """
    One pass through the validate/commit protocol.

    ``REQUESTED -> VALIDATED -> COMMITTED`` on success, ``REQUESTED ->
    REJECTED`` (with ``reason``) otherwise.
    """
    provider_id: int
    interval: Interval
    buffer_minutes: int = 0
    state: AttemptState = AttemptState.REQUESTED
    reason: Optional[RejectionReason] = None
    booking: Optional[Any] = None

    @property
    def committed(self) -> bool:
        return self.state is AttemptState.COMMITTED

    @property
    def booking_id(self) -> Optional[int]:
        return self.booking.id if self.booking is not None else None

    def validated(self) -> "BookingAttempt":
        self.state = AttemptState.VALIDATED
        return self

    def commit(self, booking: Any) -> "BookingAttempt":
        self.booking = booking
        self.state = AttemptState.COMMITTED
        return self

    def reject(self, reason: RejectionReason) -> "BookingAttempt":
        self.reason = reason
        self.state = AttemptState.REJECTED
        return self


# ---------------------------------------------------------------------------
# Recurring series expansion
# ---------------------------------------------------------------------------

OUTCOME_BOOKED = "booked"
OUTCOME_RESCHEDULED = "rescheduled"
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"

SKIP_EXCEPTION = "exception"
SKIP_HOLIDAY = "holiday"
SKIP_NO_SUCH_DAY = "no_such_day"
SKIP_STOPPED = "stopped"


@dataclass
class OccurrenceOutcome:
    """
    Result of one occurrence of a recurring series.

    ``date`` is the date the rule asked for. For rescheduled occurrences
    ``start`` holds where the booking actually landed.
    """
    position: int
    date: date
    status: str
    reason: Optional[str] = None
    booking_id: Optional[int] = None
    start: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "date": self.date.isoformat(),
            "status": self.status,
            "reason": self.reason,
            "booking_id": self.booking_id,
            "start": self.start.isoformat() if self.start else None,
        }


@dataclass
class SeriesExpansionResult:
    """Full outcome list of a series expansion (not atomic)."""
    series_id: Optional[int]
    outcomes: List[OccurrenceOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def booked_count(self) -> int:
        return self._count(OUTCOME_BOOKED) + self._count(OUTCOME_RESCHEDULED)

    @property
    def skipped_count(self) -> int:
        return self._count(OUTCOME_SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(OUTCOME_FAILED)

    @property
    def partial_failure(self) -> bool:
        return self.failed_count > 0

    def raise_for_partial_failure(self) -> None:
        if self.partial_failure:
            raise PartialFailureError(self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series_id": self.series_id,
            "booked_count": self.booked_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "partial_failure": self.partial_failure,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AffectedBooking:
    booking_id: int
    provider_id: int
    patient_id: int
    interval: Interval


@dataclass(frozen=True)
class AuditEvent:
    actor: str
    action: str
    entity_type: str
    entity_id: int
    timestamp: datetime = field(default_factory=clinic_now)
    details: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)
