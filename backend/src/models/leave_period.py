"""
Leave period model.

A leave covers every calendar date from ``start_date`` to ``end_date``
inclusive. All-day leave blocks each covered date entirely; partial-day leave
blocks ``[start_time, end_time)`` on each covered date. Only approved leave
takes time away from the provider's schedule.

Leave is never deleted. It moves through ``pending -> approved | rejected |
cancelled`` and ``approved -> cancelled``.
"""

from datetime import date, time, datetime
from typing import Optional
from sqlalchemy import Date, String, Text, Time, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.constants import LEAVE_STATUS_PENDING, MAX_LABEL_LENGTH
from core.database import Base


class LeavePeriod(Base):
    """A provider's leave request and its approval state."""

    __tablename__ = "leave_periods"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the leave."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id"))
    """Reference to the provider on leave."""

    title: Mapped[str] = mapped_column(String(MAX_LABEL_LENGTH))
    """Short description shown on the calendar."""

    leave_type: Mapped[str] = mapped_column(String(20), default="vacation")
    """Valid values: 'vacation', 'sick', 'personal', 'professional', 'other'."""

    start_date: Mapped[date] = mapped_column(Date)
    """First covered date."""

    end_date: Mapped[date] = mapped_column(Date)
    """Last covered date (inclusive)."""

    all_day: Mapped[bool] = mapped_column(default=True)
    """True blocks each covered date entirely."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Daily start of a partial-day leave."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Daily end of a partial-day leave."""

    status: Mapped[str] = mapped_column(String(20), default=LEAVE_STATUS_PENDING)
    """Valid values: 'pending', 'approved', 'rejected', 'cancelled'."""

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Reason given when the leave was rejected."""

    approved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Actor that approved the leave."""

    status_updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp of the last status transition."""

    affected_bookings_processed: Mapped[bool] = mapped_column(default=False)
    """
    Set once the bookings overlapping an approved leave have been handed to
    the notification collaborator.
    """

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="leave_periods")

    __table_args__ = (
        Index('idx_leave_periods_provider_dates', 'provider_id', 'start_date', 'end_date'),
        Index('idx_leave_periods_provider_status', 'provider_id', 'status'),
    )

    def covers(self, target_date: date) -> bool:
        """Whether the leave covers the given calendar date."""
        return self.start_date <= target_date <= self.end_date

    def __repr__(self) -> str:
        return f"<LeavePeriod(id={self.id}, provider_id={self.provider_id}, {self.start_date}..{self.end_date}, status='{self.status}')>"
