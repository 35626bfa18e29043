"""
Conflict detection for a candidate booking interval.

Checks run in a fixed order and the first failure wins:

1. the appointment must lie inside the working window,
2. the appointment plus buffer must not touch approved leave,
3. ... nor an active break,
4. ... nor the occupied interval of another ledger booking.

``evaluate`` is pure and shared with the slot generator, so a slot the
generator yields is exactly an interval ``check`` accepts.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from services.availability_service import AvailabilityService, UnconfiguredPolicy
from shared_types.scheduling import (
    ConflictResult,
    DuringBreak,
    NoConflict,
    OnApprovedLeave,
    OutsideWorkingHours,
    OverlapsBooking,
    ScheduleSnapshot,
)
from utils.interval_utils import Interval, contains, overlaps

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Answers whether an interval can be booked for a provider."""

    @staticmethod
    def evaluate(snapshot: ScheduleSnapshot, interval: Interval, buffer_minutes: int = 0) -> ConflictResult:
        """
        Evaluate an interval against a schedule snapshot.

        Pure function - no database queries. Uses pre-fetched data.

        Args:
            snapshot: Schedule snapshot of the interval's date
            interval: The appointment itself
            buffer_minutes: Unbookable time following the appointment

        Returns:
            NoConflict, or the variant describing the first failed check
        """
        if snapshot.window is None or not contains(snapshot.window, interval):
            return OutsideWorkingHours()

        occupied = interval.with_buffer(buffer_minutes)

        for leave in snapshot.leave_blocks:
            if overlaps(leave.interval, occupied):
                return OnApprovedLeave(leave_id=leave.leave_id)

        for block in snapshot.break_blocks:
            if overlaps(block.interval, occupied):
                return DuringBreak(break_rule_id=block.break_rule_id)

        for booking in snapshot.booking_blocks:
            if overlaps(booking.interval, occupied):
                return OverlapsBooking(conflicting_id=booking.booking_id)

        return NoConflict()

    @staticmethod
    def check(
        db: Session,
        provider_id: int,
        interval: Interval,
        buffer_minutes: int = 0,
        exclude_booking_id: Optional[int] = None,
        policy: UnconfiguredPolicy = UnconfiguredPolicy.RAISE
    ) -> ConflictResult:
        """
        Check an interval against the provider's current schedule.

        Args:
            db: Database session
            provider_id: Provider ID
            interval: The appointment itself
            buffer_minutes: Unbookable time following the appointment
            exclude_booking_id: Booking to ignore (the one being rescheduled)
            policy: Behavior when the provider has no working hours at all

        Returns:
            ConflictResult

        Raises:
            NotFoundError: If the provider is unknown, or unconfigured under RAISE
        """
        snapshot = AvailabilityService.get_schedule_snapshot(
            db, provider_id, interval.start.date(),
            exclude_booking_id=exclude_booking_id,
            policy=policy,
        )
        result = ConflictDetector.evaluate(snapshot, interval, buffer_minutes)
        if result.has_conflict:
            logger.debug(
                f"Conflict for provider {provider_id} at {interval.start.isoformat()}: {result.kind}"
            )
        return result
