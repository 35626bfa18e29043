"""
Booking ledger: the store of committed bookings.

The ledger answers "which bookings occupy this provider's time in this
range". It never checks conflicts on insert; that is the booking
coordinator's job, done inside the provider's exclusive section.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from core.constants import LEDGER_BUFFER_SLACK_MINUTES, LEDGER_OCCUPYING_STATUSES
from core.exceptions import NotFoundError
from models import Booking
from utils.interval_utils import Interval, overlaps

logger = logging.getLogger(__name__)


class BookingLedger:
    """Queries and low-level mutations of the bookings table."""

    @staticmethod
    def bookings_in_range(
        db: Session,
        provider_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None
    ) -> List[Booking]:
        """
        Get the ledger-occupying bookings whose occupied interval overlaps a range.

        The occupied interval includes each booking's buffer, which is derived
        on read, so the SQL prefilter is widened by the largest possible
        buffer and the exact test is done with ``overlaps``.

        Args:
            db: Database session
            provider_id: Provider ID
            start: Range start (inclusive)
            end: Range end (exclusive)
            exclude_booking_id: Booking to ignore (the one being moved)

        Returns:
            Bookings ordered by start time
        """
        query = db.query(Booking).filter(
            Booking.provider_id == provider_id,
            Booking.status.in_(LEDGER_OCCUPYING_STATUSES),
            Booking.start_at < end,
            Booking.end_at > start - timedelta(minutes=LEDGER_BUFFER_SLACK_MINUTES)
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)

        window = Interval(start, end)
        bookings = query.order_by(Booking.start_at, Booking.id).all()
        return [booking for booking in bookings if overlaps(booking.occupied_interval, window)]

    @staticmethod
    def bookings_on(
        db: Session,
        provider_id: int,
        target_date: date,
        exclude_booking_id: Optional[int] = None
    ) -> List[Booking]:
        """Get the ledger-occupying bookings that touch a calendar date."""
        day = Interval.whole_day(target_date)
        return BookingLedger.bookings_in_range(
            db, provider_id, day.start, day.end, exclude_booking_id=exclude_booking_id
        )

    @staticmethod
    def insert(db: Session, booking: Booking) -> int:
        """
        Add a booking to the ledger and flush it to obtain its id.

        The caller owns the transaction (commit or rollback).
        """
        db.add(booking)
        db.flush()
        return booking.id

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Booking:
        """
        Get a booking by ID.

        Raises:
            NotFoundError: If the booking does not exist
        """
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def set_status(db: Session, booking: Booking, status: str) -> Booking:
        booking.status = status
        db.flush()
        return booking

    @staticmethod
    def set_interval(db: Session, booking: Booking, interval: Interval) -> Booking:
        booking.start_at = interval.start
        booking.end_at = interval.end
        db.flush()
        return booking

    @staticmethod
    def bookings_for_series(db: Session, series_id: int) -> List[Booking]:
        """All bookings generated from a series, in occurrence order."""
        return db.query(Booking).filter(
            Booking.series_id == series_id
        ).order_by(Booking.series_position, Booking.id).all()
