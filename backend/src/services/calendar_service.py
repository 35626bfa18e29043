"""
Calendar aggregation for a provider.

Merges working windows, date exceptions, approved leave, breaks, holidays
and ledger bookings into one ordered event list, and reports the free
windows and any overlaps between them. The view is diagnostic only: it
never changes the schedule.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.constants import MAX_CALENDAR_RANGE_DAYS, MAX_CLINIC_CALENDAR_RANGE_DAYS
from core.exceptions import ValidationError
from models import Booking, Provider
from services.availability_service import AvailabilityService, UnconfiguredPolicy
from services.booking_ledger import BookingLedger
from services.holiday_service import HolidayService
from shared_types.scheduling import ScheduleSnapshot
from utils.datetime_utils import combine, date_range
from utils.interval_utils import Interval, contains, overlaps, subtract

logger = logging.getLogger(__name__)

EVENT_WORKING_HOURS = "working_hours"
EVENT_DAY_OFF = "day_off"
EVENT_LEAVE = "leave"
EVENT_BREAK = "break"
EVENT_HOLIDAY = "holiday"
EVENT_BOOKING = "booking"

# Order of events that start at the same instant
_EVENT_ORDER = {
    EVENT_HOLIDAY: 0,
    EVENT_DAY_OFF: 1,
    EVENT_WORKING_HOURS: 2,
    EVENT_LEAVE: 3,
    EVENT_BREAK: 4,
    EVENT_BOOKING: 5,
}


@dataclass
class CalendarEvent:
    kind: str
    start: datetime
    end: datetime
    title: str
    source_id: Optional[int] = None
    from_exception: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "title": self.title,
            "source_id": self.source_id,
            "from_exception": self.from_exception,
            "details": self.details,
        }


@dataclass
class CalendarOverlap:
    """A booking that collides with something else on the calendar."""
    booking_id: int
    other_kind: str
    other_id: Optional[int]
    date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "other_kind": self.other_kind,
            "other_id": self.other_id,
            "date": self.date.isoformat(),
        }


@dataclass
class ProviderCalendar:
    provider_id: int
    start_date: date
    end_date: date
    events: List[CalendarEvent] = field(default_factory=list)
    free_windows: List[Interval] = field(default_factory=list)
    overlaps: List[CalendarOverlap] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "events": [event.to_dict() for event in self.events],
            "free_windows": [
                {"start": window.start.isoformat(), "end": window.end.isoformat()}
                for window in self.free_windows
            ],
            "overlaps": [overlap.to_dict() for overlap in self.overlaps],
        }


@dataclass
class ClinicCalendar:
    """Calendars of several providers over the same range."""
    start_date: date
    end_date: date
    providers: List[ProviderCalendar] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "providers": [calendar.to_dict() for calendar in self.providers],
        }


class CalendarService:
    """Read-only calendar view over the scheduling data."""

    @staticmethod
    def validate_range(start_date: date, end_date: date, max_days: int = MAX_CALENDAR_RANGE_DAYS) -> None:
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        if (end_date - start_date).days + 1 > max_days:
            raise ValidationError(f"Calendar range is limited to {max_days} days")

    @staticmethod
    def get_provider_calendar(
        db: Session,
        provider_id: int,
        start_date: date,
        end_date: date
    ) -> ProviderCalendar:
        """
        Build a provider's calendar for a date range.

        Args:
            db: Database session
            provider_id: Provider ID
            start_date: First date (inclusive)
            end_date: Last date (inclusive, at most 62 days after start)

        Returns:
            ProviderCalendar with ordered events, free windows and overlaps

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If the range is invalid or too long
        """
        CalendarService.validate_range(start_date, end_date)
        AvailabilityService.get_provider(db, provider_id)

        calendar = ProviderCalendar(provider_id=provider_id, start_date=start_date, end_date=end_date)

        exception_labels = {
            exception.date: exception.label
            for exception in AvailabilityService.list_date_exceptions(db, provider_id, start_date, end_date)
        }
        holidays = {
            holiday.date: holiday
            for holiday in HolidayService.holidays_in_range(db, start_date, end_date)
        }
        range_start = combine(start_date, datetime.min.time())
        range_end = combine(end_date + timedelta(days=1), datetime.min.time())
        bookings = BookingLedger.bookings_in_range(db, provider_id, range_start, range_end)

        for current in date_range(start_date, end_date):
            snapshot = AvailabilityService.get_schedule_snapshot(
                db, provider_id, current, policy=UnconfiguredPolicy.UNAVAILABLE
            )
            CalendarService._add_day_events(calendar, snapshot, exception_labels.get(current))

            holiday = holidays.get(current)
            if holiday is not None:
                day = Interval.whole_day(current)
                calendar.events.append(CalendarEvent(
                    kind=EVENT_HOLIDAY, start=day.start, end=day.end,
                    title=holiday.name, source_id=holiday.id,
                ))

            if snapshot.window is not None:
                blocked = [block.interval for block in snapshot.leave_blocks]
                blocked += [block.interval for block in snapshot.break_blocks]
                calendar.free_windows.extend(subtract(snapshot.window, blocked))

            day_bookings = [booking for booking in bookings if booking.start_at.date() == current]
            calendar.overlaps.extend(CalendarService._day_overlaps(snapshot, day_bookings, holiday is not None))

        for booking in bookings:
            calendar.events.append(CalendarEvent(
                kind=EVENT_BOOKING,
                start=booking.start_at,
                end=booking.end_at,
                title=f"Booking #{booking.id}",
                source_id=booking.id,
                details={
                    "patient_id": booking.patient_id,
                    "appointment_type_id": booking.appointment_type_id,
                    "status": booking.status,
                    "buffer_minutes": booking.buffer_minutes,
                    "series_id": booking.series_id,
                },
            ))

        calendar.events.sort(key=lambda event: (event.start, _EVENT_ORDER[event.kind], event.end))
        logger.debug(
            f"Calendar for provider {provider_id} {start_date}..{end_date}: "
            f"{len(calendar.events)} events, {len(calendar.overlaps)} overlaps"
        )
        return calendar

    @staticmethod
    def get_clinic_calendar(
        db: Session,
        start_date: date,
        end_date: date,
        provider_ids: Optional[List[int]] = None
    ) -> ClinicCalendar:
        """
        Build the calendars of several providers for a date range.

        Args:
            db: Database session
            start_date: First date (inclusive)
            end_date: Last date (inclusive, at most 31 days after start)
            provider_ids: Providers to include; all active providers when omitted

        Returns:
            ClinicCalendar with one ProviderCalendar per provider, by provider id

        Raises:
            NotFoundError: If a requested provider does not exist
            ValidationError: If the range is invalid or too long
        """
        CalendarService.validate_range(start_date, end_date, max_days=MAX_CLINIC_CALENDAR_RANGE_DAYS)

        if provider_ids:
            ids = sorted(set(provider_ids))
        else:
            ids = [
                provider.id for provider in
                db.query(Provider).filter(Provider.is_active.is_(True)).order_by(Provider.id).all()
            ]

        clinic = ClinicCalendar(start_date=start_date, end_date=end_date)
        for provider_id in ids:
            clinic.providers.append(CalendarService.get_provider_calendar(db, provider_id, start_date, end_date))
        logger.debug(f"Clinic calendar {start_date}..{end_date} for {len(ids)} provider(s)")
        return clinic

    @staticmethod
    def _add_day_events(calendar: ProviderCalendar, snapshot: ScheduleSnapshot, exception_label: Optional[str]) -> None:
        if snapshot.window is not None:
            calendar.events.append(CalendarEvent(
                kind=EVENT_WORKING_HOURS,
                start=snapshot.window.start,
                end=snapshot.window.end,
                title=exception_label if snapshot.window_from_exception and exception_label else "Working hours",
                from_exception=snapshot.window_from_exception,
            ))
        elif snapshot.window_from_exception:
            day = Interval.whole_day(snapshot.date)
            calendar.events.append(CalendarEvent(
                kind=EVENT_DAY_OFF, start=day.start, end=day.end,
                title=exception_label or "Day off", from_exception=True,
            ))

        for leave in snapshot.leave_blocks:
            calendar.events.append(CalendarEvent(
                kind=EVENT_LEAVE, start=leave.interval.start, end=leave.interval.end,
                title="Leave", source_id=leave.leave_id, details={"all_day": leave.all_day},
            ))
        for block in snapshot.break_blocks:
            calendar.events.append(CalendarEvent(
                kind=EVENT_BREAK, start=block.interval.start, end=block.interval.end,
                title="Break", source_id=block.break_rule_id,
            ))

    @staticmethod
    def _day_overlaps(
        snapshot: ScheduleSnapshot,
        bookings: List[Booking],
        is_holiday: bool
    ) -> List[CalendarOverlap]:
        found: List[CalendarOverlap] = []
        for index, booking in enumerate(bookings):
            occupied = booking.occupied_interval
            if snapshot.window is None or not contains(snapshot.window, booking.interval):
                found.append(CalendarOverlap(booking.id, "outside_working_hours", None, snapshot.date))
            if is_holiday:
                found.append(CalendarOverlap(booking.id, EVENT_HOLIDAY, None, snapshot.date))
            for leave in snapshot.leave_blocks:
                if overlaps(leave.interval, occupied):
                    found.append(CalendarOverlap(booking.id, EVENT_LEAVE, leave.leave_id, snapshot.date))
            for block in snapshot.break_blocks:
                if overlaps(block.interval, occupied):
                    found.append(CalendarOverlap(booking.id, EVENT_BREAK, block.break_rule_id, snapshot.date))
            for other in bookings[index + 1:]:
                if overlaps(other.occupied_interval, occupied):
                    found.append(CalendarOverlap(booking.id, EVENT_BOOKING, other.id, snapshot.date))
        return found
