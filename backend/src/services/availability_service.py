"""
Availability service: the provider's layered availability rules.

Resolves, for a provider and a date, the working window (date exception
first, then the weekly rule), the approved leave and the active breaks that
take time out of it, and reads them together with the ledger bookings into a
``ScheduleSnapshot`` for the pure slot and conflict functions.

Also owns configuration of weekly working hours, date exceptions and break
rules. All inputs are validated here and rejected with ``ValidationError``.
"""

import logging
from datetime import date as date_type, time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from core.constants import LEAVE_STATUS_APPROVED
from core.exceptions import NotFoundError, ValidationError
from core.sentinels import MISSING
from models import BreakRule, DateException, LeavePeriod, Provider, WorkingHoursRule
from services.booking_ledger import BookingLedger
from shared_types.scheduling import BookingBlock, BreakBlock, LeaveBlock, ScheduleSnapshot
from utils.datetime_utils import parse_wall_time
from utils.interval_utils import Interval

logger = logging.getLogger(__name__)

TimeInput = Union[str, time]


class UnconfiguredPolicy(Enum):
    """What to do when a provider has no working hours configured at all."""
    RAISE = "raise"
    UNAVAILABLE = "unavailable"


def coerce_time(value: Optional[TimeInput], field_name: str) -> Optional[time]:
    """
    Accept a time object or a strict "HH:MM" string.

    Raises:
        ValidationError: If the value is a malformed string
    """
    if value is None or isinstance(value, time):
        return value
    try:
        return parse_wall_time(value)
    except ValueError as e:
        raise ValidationError(f"{field_name}: {e}") from e


def validate_time_range(start: Optional[time], end: Optional[time], what: str) -> Tuple[time, time]:
    """Require both times and start < end."""
    if start is None or end is None:
        raise ValidationError(f"{what} requires both start_time and end_time")
    if start >= end:
        raise ValidationError(f"{what} start_time must be before end_time")
    return start, end


def _validate_day_of_week(day_of_week: int) -> None:
    if not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)")


class AvailabilityService:
    """
    Service class for availability operations.

    Read operations take a date and return concrete ``Interval`` values;
    wall-clock times never leave this service unanchored.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_provider(db: Session, provider_id: int) -> Provider:
        """
        Get a provider by ID.

        Raises:
            NotFoundError: If the provider does not exist
        """
        provider = db.query(Provider).filter(Provider.id == provider_id).first()
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        return provider

    @staticmethod
    def has_working_hours(db: Session, provider_id: int) -> bool:
        return db.query(WorkingHoursRule.id).filter(
            WorkingHoursRule.provider_id == provider_id
        ).first() is not None

    @staticmethod
    def _resolve_window(
        db: Session,
        provider_id: int,
        target_date: date_type,
        policy: UnconfiguredPolicy
    ) -> Tuple[Optional[Interval], bool]:
        """Return the working window and whether it came from a date exception."""
        AvailabilityService.get_provider(db, provider_id)

        exception = db.query(DateException).filter(
            DateException.provider_id == provider_id,
            DateException.date == target_date
        ).first()
        if exception is not None:
            if not exception.is_working or exception.start_time is None or exception.end_time is None:
                return None, True
            return Interval.from_wall_times(target_date, exception.start_time, exception.end_time), True

        rule = db.query(WorkingHoursRule).filter(
            WorkingHoursRule.provider_id == provider_id,
            WorkingHoursRule.day_of_week == target_date.weekday()
        ).first()
        if rule is None:
            if AvailabilityService.has_working_hours(db, provider_id):
                # Configured, but this weekday was never given a row
                return None, False
            if policy is UnconfiguredPolicy.RAISE:
                raise NotFoundError(f"Provider {provider_id} has no working hours configured")
            return None, False

        if not rule.is_working or rule.start_time is None or rule.end_time is None:
            return None, False
        return Interval.from_wall_times(target_date, rule.start_time, rule.end_time), False

    @staticmethod
    def effective_window(
        db: Session,
        provider_id: int,
        target_date: date_type,
        policy: UnconfiguredPolicy = UnconfiguredPolicy.RAISE
    ) -> Optional[Interval]:
        """
        Get the provider's working window for a date.

        A date exception fully supersedes the weekly rule for that date.

        Args:
            db: Database session
            provider_id: Provider ID
            target_date: Date to resolve
            policy: Behavior when the provider has no working hours at all

        Returns:
            Working interval, or None if the provider does not work that date

        Raises:
            NotFoundError: If the provider is unknown, or unconfigured under RAISE
        """
        window, _ = AvailabilityService._resolve_window(db, provider_id, target_date, policy)
        return window

    @staticmethod
    def leave_for(db: Session, provider_id: int, target_date: date_type) -> List[LeavePeriod]:
        """Get approved leave covering a date."""
        return db.query(LeavePeriod).filter(
            LeavePeriod.provider_id == provider_id,
            LeavePeriod.status == LEAVE_STATUS_APPROVED,
            LeavePeriod.start_date <= target_date,
            LeavePeriod.end_date >= target_date
        ).order_by(LeavePeriod.id).all()

    @staticmethod
    def leave_interval_on(leave: LeavePeriod, target_date: date_type) -> Interval:
        """The interval a leave blocks on one of its covered dates."""
        if leave.all_day or leave.start_time is None or leave.end_time is None:
            return Interval.whole_day(target_date)
        return Interval.from_wall_times(target_date, leave.start_time, leave.end_time)

    @staticmethod
    def leave_blocks_for(db: Session, provider_id: int, target_date: date_type) -> List[LeaveBlock]:
        return [
            LeaveBlock(
                leave_id=leave.id,
                interval=AvailabilityService.leave_interval_on(leave, target_date),
                all_day=leave.all_day,
            )
            for leave in AvailabilityService.leave_for(db, provider_id, target_date)
        ]

    @staticmethod
    def break_blocks_for(db: Session, provider_id: int, target_date: date_type) -> List[BreakBlock]:
        """Get the active break rules of a date as blocks carrying their rule ids."""
        rules = db.query(BreakRule).filter(
            BreakRule.provider_id == provider_id,
            BreakRule.day_of_week == target_date.weekday(),
            BreakRule.is_active == True  # noqa: E712
        ).order_by(BreakRule.start_time).all()
        return [
            BreakBlock(
                break_rule_id=rule.id,
                interval=Interval.from_wall_times(target_date, rule.start_time, rule.end_time),
            )
            for rule in rules
            if rule.applies_on(target_date)
        ]

    @staticmethod
    def breaks_for(db: Session, provider_id: int, target_date: date_type) -> List[Interval]:
        """Get the break intervals active on a date."""
        return [block.interval for block in AvailabilityService.break_blocks_for(db, provider_id, target_date)]

    @staticmethod
    def get_schedule_snapshot(
        db: Session,
        provider_id: int,
        target_date: date_type,
        exclude_booking_id: Optional[int] = None,
        policy: UnconfiguredPolicy = UnconfiguredPolicy.RAISE
    ) -> ScheduleSnapshot:
        """
        Read everything that decides bookability on a date.

        Args:
            db: Database session
            provider_id: Provider ID
            target_date: Date to read
            exclude_booking_id: Booking left out of the booking blocks (when moving it)
            policy: Behavior when the provider has no working hours at all

        Returns:
            ScheduleSnapshot for the date
        """
        window, from_exception = AvailabilityService._resolve_window(db, provider_id, target_date, policy)
        bookings = BookingLedger.bookings_on(db, provider_id, target_date, exclude_booking_id=exclude_booking_id)
        return ScheduleSnapshot(
            provider_id=provider_id,
            date=target_date,
            window=window,
            window_from_exception=from_exception,
            leave_blocks=AvailabilityService.leave_blocks_for(db, provider_id, target_date),
            break_blocks=AvailabilityService.break_blocks_for(db, provider_id, target_date),
            booking_blocks=[
                BookingBlock(booking_id=booking.id, interval=booking.occupied_interval)
                for booking in bookings
            ],
        )

    # ------------------------------------------------------------------
    # Weekly working hours
    # ------------------------------------------------------------------

    @staticmethod
    def set_weekly_schedule(
        db: Session,
        provider_id: int,
        days: Sequence[Dict[str, Any]]
    ) -> List[WorkingHoursRule]:
        """
        Replace a provider's weekly working hours.

        Args:
            db: Database session
            provider_id: Provider ID
            days: Exactly seven entries, one per weekday, each with
                ``day_of_week``, ``is_working`` and, when working,
                ``start_time``/``end_time`` ("HH:MM" or time)

        Returns:
            The seven rules ordered by day of week

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If the week is incomplete or a window is invalid
        """
        AvailabilityService.get_provider(db, provider_id)

        if len(days) != 7:
            raise ValidationError("Weekly schedule must have exactly seven days")

        parsed: Dict[int, Tuple[bool, Optional[time], Optional[time]]] = {}
        for day in days:
            day_of_week = day.get("day_of_week")
            _validate_day_of_week(day_of_week)  # type: ignore[arg-type]
            if day_of_week in parsed:
                raise ValidationError(f"Duplicate day_of_week {day_of_week} in weekly schedule")
            is_working = bool(day.get("is_working", True))
            if is_working:
                start, end = validate_time_range(
                    coerce_time(day.get("start_time"), "start_time"),
                    coerce_time(day.get("end_time"), "end_time"),
                    "Working day",
                )
                parsed[day_of_week] = (True, start, end)  # type: ignore[index]
            else:
                parsed[day_of_week] = (False, None, None)  # type: ignore[index]

        existing = {
            rule.day_of_week: rule
            for rule in db.query(WorkingHoursRule).filter(WorkingHoursRule.provider_id == provider_id).all()
        }
        for day_of_week, (is_working, start, end) in parsed.items():
            rule = existing.get(day_of_week)
            if rule is None:
                rule = WorkingHoursRule(provider_id=provider_id, day_of_week=day_of_week)
                db.add(rule)
            rule.is_working = is_working
            rule.start_time = start
            rule.end_time = end

        db.commit()
        logger.info(f"Updated weekly working hours for provider {provider_id}")
        return AvailabilityService.get_weekly_schedule(db, provider_id)

    @staticmethod
    def get_weekly_schedule(db: Session, provider_id: int) -> List[WorkingHoursRule]:
        AvailabilityService.get_provider(db, provider_id)
        return db.query(WorkingHoursRule).filter(
            WorkingHoursRule.provider_id == provider_id
        ).order_by(WorkingHoursRule.day_of_week).all()

    # ------------------------------------------------------------------
    # Date exceptions
    # ------------------------------------------------------------------

    @staticmethod
    def upsert_date_exception(
        db: Session,
        provider_id: int,
        target_date: date_type,
        is_working: bool,
        label: str,
        start_time: Optional[TimeInput] = None,
        end_time: Optional[TimeInput] = None,
        description: Optional[str] = None
    ) -> DateException:
        """
        Create or replace the exception for one date.

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If a working exception has no valid window
        """
        AvailabilityService.get_provider(db, provider_id)
        if not label or not label.strip():
            raise ValidationError("Date exception label is required")

        start: Optional[time] = None
        end: Optional[time] = None
        if is_working:
            start, end = validate_time_range(
                coerce_time(start_time, "start_time"),
                coerce_time(end_time, "end_time"),
                "Working date exception",
            )

        exception = db.query(DateException).filter(
            DateException.provider_id == provider_id,
            DateException.date == target_date
        ).first()
        if exception is None:
            exception = DateException(provider_id=provider_id, date=target_date)
            db.add(exception)

        exception.is_working = is_working
        exception.start_time = start
        exception.end_time = end
        exception.label = label.strip()
        exception.description = description
        db.commit()
        db.refresh(exception)
        logger.info(f"Set date exception for provider {provider_id} on {target_date} (working={is_working})")
        return exception

    @staticmethod
    def remove_date_exception(db: Session, provider_id: int, target_date: date_type) -> None:
        """
        Remove the exception for one date, restoring the weekly rule.

        Raises:
            NotFoundError: If there is no exception for that date
        """
        exception = db.query(DateException).filter(
            DateException.provider_id == provider_id,
            DateException.date == target_date
        ).first()
        if exception is None:
            raise NotFoundError(f"No date exception for provider {provider_id} on {target_date}")
        db.delete(exception)
        db.commit()
        logger.info(f"Removed date exception for provider {provider_id} on {target_date}")

    @staticmethod
    def list_date_exceptions(
        db: Session,
        provider_id: int,
        start_date: date_type,
        end_date: date_type
    ) -> List[DateException]:
        return db.query(DateException).filter(
            DateException.provider_id == provider_id,
            DateException.date >= start_date,
            DateException.date <= end_date
        ).order_by(DateException.date).all()

    # ------------------------------------------------------------------
    # Break rules
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_effective_range(effective_from: Optional[date_type], effective_to: Optional[date_type]) -> None:
        if effective_from is not None and effective_to is not None and effective_from > effective_to:
            raise ValidationError("effective_from must not be after effective_to")

    @staticmethod
    def create_break_rule(
        db: Session,
        provider_id: int,
        day_of_week: int,
        start_time: TimeInput,
        end_time: TimeInput,
        title: str = "Break",
        effective_from: Optional[date_type] = None,
        effective_to: Optional[date_type] = None
    ) -> BreakRule:
        """
        Create a weekly recurring break.

        Raises:
            NotFoundError: If the provider does not exist
            ValidationError: If the day, times or effective range are invalid
        """
        AvailabilityService.get_provider(db, provider_id)
        _validate_day_of_week(day_of_week)
        start, end = validate_time_range(
            coerce_time(start_time, "start_time"), coerce_time(end_time, "end_time"), "Break"
        )
        AvailabilityService._validate_effective_range(effective_from, effective_to)

        rule = BreakRule(
            provider_id=provider_id,
            title=title or "Break",
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_active=True,
            effective_from=effective_from,
            effective_to=effective_to,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        logger.info(f"Created break rule {rule.id} for provider {provider_id} on day {day_of_week}")
        return rule

    @staticmethod
    def get_break_rule(db: Session, break_rule_id: int) -> BreakRule:
        rule = db.query(BreakRule).filter(BreakRule.id == break_rule_id).first()
        if not rule:
            raise NotFoundError(f"Break rule {break_rule_id} not found")
        return rule

    @staticmethod
    def update_break_rule(
        db: Session,
        break_rule_id: int,
        day_of_week: Any = MISSING,
        start_time: Any = MISSING,
        end_time: Any = MISSING,
        title: Any = MISSING,
        effective_from: Any = MISSING,
        effective_to: Any = MISSING
    ) -> BreakRule:
        """
        Update a break rule in place. Arguments left as MISSING are unchanged;
        ``None`` clears an optional effective bound.
        """
        rule = AvailabilityService.get_break_rule(db, break_rule_id)

        new_day = rule.day_of_week if day_of_week is MISSING else day_of_week
        new_start = rule.start_time if start_time is MISSING else coerce_time(start_time, "start_time")
        new_end = rule.end_time if end_time is MISSING else coerce_time(end_time, "end_time")
        new_from = rule.effective_from if effective_from is MISSING else effective_from
        new_to = rule.effective_to if effective_to is MISSING else effective_to

        _validate_day_of_week(new_day)
        validate_time_range(new_start, new_end, "Break")
        AvailabilityService._validate_effective_range(new_from, new_to)

        rule.day_of_week = new_day
        rule.start_time = new_start  # type: ignore[assignment]
        rule.end_time = new_end  # type: ignore[assignment]
        rule.effective_from = new_from
        rule.effective_to = new_to
        if title is not MISSING and title:
            rule.title = title
        db.commit()
        db.refresh(rule)
        logger.info(f"Updated break rule {break_rule_id}")
        return rule

    @staticmethod
    def deactivate_break_rule(db: Session, break_rule_id: int) -> BreakRule:
        """Deactivate a break rule; it is kept but no longer blocks time."""
        rule = AvailabilityService.get_break_rule(db, break_rule_id)
        rule.is_active = False
        db.commit()
        logger.info(f"Deactivated break rule {break_rule_id}")
        return rule

    @staticmethod
    def list_break_rules(db: Session, provider_id: int, include_inactive: bool = False) -> List[BreakRule]:
        AvailabilityService.get_provider(db, provider_id)
        query = db.query(BreakRule).filter(BreakRule.provider_id == provider_id)
        if not include_inactive:
            query = query.filter(BreakRule.is_active == True)  # noqa: E712
        return query.order_by(BreakRule.day_of_week, BreakRule.start_time).all()
