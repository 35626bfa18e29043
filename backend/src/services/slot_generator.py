"""
Slot generation.

Slots are candidate start times stepped from the start of the working
window. A slot survives when the conflict detector's pure evaluation accepts
it, which keeps generated slots and booking checks in agreement.
"""

import logging
from datetime import date as date_type, datetime, time, timedelta
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.config import get_scheduling_settings
from core.constants import MAX_BATCH_DATES
from core.exceptions import ValidationError
from services.appointment_type_service import AppointmentTypeService
from services.availability_service import AvailabilityService, UnconfiguredPolicy
from services.conflict_detector import ConflictDetector
from shared_types.scheduling import ScheduleSnapshot, SlotData
from utils.datetime_utils import combine
from utils.interval_utils import Interval

logger = logging.getLogger(__name__)


class SlotGenerator:
    """Derives bookable slots from a provider's schedule."""

    @staticmethod
    def iter_slots(
        snapshot: ScheduleSnapshot,
        duration_minutes: int,
        buffer_minutes: int = 0,
        step_minutes: Optional[int] = None
    ) -> Iterator[SlotData]:
        """
        Lazily yield the bookable slots of a snapshot in chronological order.

        Pure function - no database queries. Uses pre-fetched data.

        Args:
            snapshot: Schedule snapshot of one date
            duration_minutes: Appointment duration
            buffer_minutes: Buffer following each appointment
            step_minutes: Distance between candidate start times

        Yields:
            SlotData for each candidate that passes conflict evaluation
        """
        if duration_minutes <= 0:
            raise ValidationError("duration_minutes must be positive")
        step = step_minutes if step_minutes is not None else get_scheduling_settings().slot_step_minutes
        if step <= 0:
            raise ValidationError("step_minutes must be positive")

        window = snapshot.window
        if window is None or snapshot.has_all_day_leave:
            return

        duration = timedelta(minutes=duration_minutes)
        current = window.start
        while current + duration <= window.end:
            interval = Interval(current, current + duration)
            if not ConflictDetector.evaluate(snapshot, interval, buffer_minutes).has_conflict:
                yield SlotData(start=interval.start, end=interval.end)
            current += timedelta(minutes=step)

    @staticmethod
    def get_available_slots(
        db: Session,
        provider_id: int,
        target_date: date_type,
        appointment_type_id: int,
        step_minutes: Optional[int] = None,
        exclude_booking_id: Optional[int] = None,
        policy: UnconfiguredPolicy = UnconfiguredPolicy.RAISE
    ) -> List[SlotData]:
        """
        Get the bookable slots of a provider on a date for an appointment type.

        Args:
            db: Database session
            provider_id: Provider ID
            target_date: Date to generate slots for
            appointment_type_id: Appointment type (decides duration and buffer)
            step_minutes: Optional override of the configured step
            exclude_booking_id: Booking to ignore (when looking for a new time for it)
            policy: Behavior when the provider has no working hours at all

        Returns:
            Slots in chronological order

        Raises:
            NotFoundError: If the provider or appointment type is unknown
            ValidationError: If the provider does not offer the appointment type
        """
        settings = AppointmentTypeService.get_effective_settings(db, provider_id, appointment_type_id)
        snapshot = AvailabilityService.get_schedule_snapshot(
            db, provider_id, target_date, exclude_booking_id=exclude_booking_id, policy=policy
        )
        return list(SlotGenerator.iter_slots(
            snapshot, settings.duration_minutes, settings.buffer_minutes, step_minutes
        ))

    @staticmethod
    def validate_batch_dates(dates: Sequence[date_type], max_dates: int = MAX_BATCH_DATES) -> List[date_type]:
        """
        Validate a batch of dates for slot lookup.

        Returns:
            The dates, de-duplicated and sorted

        Raises:
            ValidationError: If the batch is empty or too large
        """
        if not dates:
            raise ValidationError("At least one date is required")
        unique_dates = sorted(set(dates))
        if len(unique_dates) > max_dates:
            raise ValidationError(f"At most {max_dates} dates can be requested at once")
        return unique_dates

    @staticmethod
    def get_batch_available_slots(
        db: Session,
        provider_id: int,
        dates: Sequence[date_type],
        appointment_type_id: int,
        step_minutes: Optional[int] = None
    ) -> Dict[date_type, List[SlotData]]:
        """Get available slots for several dates (up to 31) in one call."""
        valid_dates = SlotGenerator.validate_batch_dates(dates)
        return {
            target_date: SlotGenerator.get_available_slots(
                db, provider_id, target_date, appointment_type_id, step_minutes=step_minutes
            )
            for target_date in valid_dates
        }

    @staticmethod
    def find_nearest_slot(
        db: Session,
        provider_id: int,
        target_date: date_type,
        appointment_type_id: int,
        preferred_time: time,
        exclude_booking_id: Optional[int] = None
    ) -> Optional[SlotData]:
        """
        Find the slot on a date whose start is closest to a preferred time.

        Ties go to the earlier slot. Providers without working hours simply
        have no slot.
        """
        slots = SlotGenerator.get_available_slots(
            db, provider_id, target_date, appointment_type_id,
            exclude_booking_id=exclude_booking_id,
            policy=UnconfiguredPolicy.UNAVAILABLE,
        )
        if not slots:
            return None
        preferred: datetime = combine(target_date, preferred_time)
        return min(slots, key=lambda slot: (abs(slot.start - preferred), slot.start))
