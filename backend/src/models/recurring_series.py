"""
Recurring series model.

Stores the recurrence rule a patient's repeating appointments were expanded
from. Generated bookings point back at the series; their ids, ordered by
position, are derived on read.
"""

from datetime import date, time, datetime
from typing import Any, List, Optional
from sqlalchemy import Date, JSON, String, Text, Time, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.constants import DEFAULT_RESCHEDULE_WINDOW_DAYS, SERIES_STATUS_ACTIVE
from core.database import Base


class RecurringSeries(Base):
    """A rule-driven sequence of bookings for one patient and provider."""

    __tablename__ = "recurring_series"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the series."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id"))
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    appointment_type_id: Mapped[int] = mapped_column(ForeignKey("appointment_types.id"))

    frequency: Mapped[str] = mapped_column(String(30))
    """Valid values: 'weekly', 'biweekly', 'monthly_by_date', 'monthly_by_weekday', 'custom'."""

    day_of_week: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Weekday for weekly-class and monthly-by-weekday rules (0=Monday)."""

    day_of_month: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Day number for monthly-by-date rules (1..31)."""

    week_of_month: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Ordinal for monthly-by-weekday rules (1..5)."""

    custom_interval_days: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Step in days for custom rules (1..365)."""

    time_of_day: Mapped[time] = mapped_column(Time)
    """Wall-clock start time of every occurrence."""

    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    occurrence_count: Mapped[Optional[int]] = mapped_column(nullable=True)

    exception_dates: Mapped[List[Any]] = mapped_column(JSON, default=list)
    """ISO dates ("YYYY-MM-DD") on which no occurrence is booked."""

    skip_holidays: Mapped[bool] = mapped_column(default=True)
    auto_reschedule: Mapped[bool] = mapped_column(default=False)
    reschedule_window_days: Mapped[int] = mapped_column(default=DEFAULT_RESCHEDULE_WINDOW_DAYS)

    status: Mapped[str] = mapped_column(String(30), default=SERIES_STATUS_ACTIVE)
    """Valid values: 'active', 'completed', 'cancelled', 'partially_cancelled'."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="series", order_by="Booking.series_position")
    """Bookings generated from this series, in occurrence order."""

    __table_args__ = (
        Index('idx_recurring_series_patient', 'patient_id'),
        Index('idx_recurring_series_provider', 'provider_id'),
    )

    @property
    def generated_booking_ids(self) -> List[int]:
        return [booking.id for booking in self.bookings]

    @property
    def exception_date_set(self) -> set[date]:
        return {date.fromisoformat(value) for value in (self.exception_dates or [])}

    def __repr__(self) -> str:
        return f"<RecurringSeries(id={self.id}, frequency='{self.frequency}', status='{self.status}')>"
