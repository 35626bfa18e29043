"""
Provider model representing clinicians whose time can be booked.

A provider owns every piece of availability configuration (weekly working
hours, date exceptions, breaks, leave) and every booking made against their
time. The provider row is also the anchor of the per-provider row lock taken
while a booking is validated and committed.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base


class Provider(Base):
    """Provider entity (doctor, therapist, ...) that appointments are booked with."""

    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the provider."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Display name of the provider."""

    is_active: Mapped[bool] = mapped_column(default=True)
    """Inactive providers cannot receive new bookings."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the provider was created."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the provider was last updated."""

    # Relationships
    working_hours = relationship("WorkingHoursRule", back_populates="provider", cascade="all, delete-orphan")
    """Weekly working hours, one row per day of week."""

    date_exceptions = relationship("DateException", back_populates="provider", cascade="all, delete-orphan")
    """Calendar-date overrides of the weekly schedule."""

    break_rules = relationship("BreakRule", back_populates="provider", cascade="all, delete-orphan")
    """Recurring weekly breaks."""

    leave_periods = relationship("LeavePeriod", back_populates="provider")
    """Leave requests (never deleted, only status changes)."""

    bookings = relationship("Booking", back_populates="provider")
    """Bookings made against this provider's time."""

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, full_name='{self.full_name}')>"
