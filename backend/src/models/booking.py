"""
Booking model, the rows of the booking ledger.

A booking occupies ``[start_at, end_at + buffer_minutes)`` of its provider's
time while its status is scheduled, in-progress or completed. The buffer is
copied from the effective appointment type settings at booking time so later
changes to the type do not move existing bookings.

Bookings are never deleted; cancelling or marking no-show frees the interval.
"""

from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import String, Text, ForeignKey, Index, TIMESTAMP, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.constants import BOOKING_STATUS_SCHEDULED
from core.database import Base
from utils.interval_utils import Interval


class Booking(Base):
    """A patient's appointment with a provider for a concrete interval."""

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the booking."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id"))
    """Reference to the provider whose time is booked."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"))
    """Reference to the patient."""

    appointment_type_id: Mapped[int] = mapped_column(ForeignKey("appointment_types.id"))
    """Reference to the appointment type."""

    start_at: Mapped[datetime] = mapped_column(DateTime)
    """Start of the appointment (naive, clinic local time)."""

    end_at: Mapped[datetime] = mapped_column(DateTime)
    """End of the appointment (naive, clinic local time, exclusive)."""

    buffer_minutes: Mapped[int] = mapped_column(default=0)
    """Unbookable time that follows the appointment."""

    status: Mapped[str] = mapped_column(String(20), default=BOOKING_STATUS_SCHEDULED)
    """Valid values: 'scheduled', 'in-progress', 'completed', 'cancelled', 'no-show'."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional notes about the appointment."""

    series_id: Mapped[Optional[int]] = mapped_column(ForeignKey("recurring_series.id"), nullable=True)
    """Recurring series this booking was generated from, if any."""

    series_position: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Zero-based position of the occurrence within its series."""

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the booking was cancelled (if applicable)."""

    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Reason given for the cancellation."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="bookings")
    patient = relationship("Patient", back_populates="bookings")
    appointment_type = relationship("AppointmentType")
    series = relationship("RecurringSeries", back_populates="bookings")

    __table_args__ = (
        Index('idx_bookings_provider_start', 'provider_id', 'start_at'),
        Index('idx_bookings_provider_status', 'provider_id', 'status'),
        Index('idx_bookings_series', 'series_id', 'series_position'),
    )

    @property
    def interval(self) -> Interval:
        """The appointment itself, without buffer."""
        return Interval(self.start_at, self.end_at)

    @property
    def occupied_interval(self) -> Interval:
        """The provider time this booking takes out of the schedule."""
        return Interval(self.start_at, self.end_at + timedelta(minutes=self.buffer_minutes or 0))

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, provider_id={self.provider_id}, {self.start_at}-{self.end_at}, status='{self.status}')>"
