"""
Appointment type model representing the services a provider can be booked for.

Each type carries a default duration and a buffer that follows every
appointment of that type (cleanup, notes). Buffer time is never bookable.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, TIMESTAMP, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base


class AppointmentType(Base):
    """Appointment type entity (e.g. 'Initial Consultation', 'Follow-up')."""

    __tablename__ = "appointment_types"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the appointment type."""

    name: Mapped[str] = mapped_column(String(255))
    """Human-readable name of the appointment type."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional service description."""

    duration_minutes: Mapped[int] = mapped_column()
    """Default duration in minutes (5..240)."""

    buffer_minutes: Mapped[int] = mapped_column(default=0)
    """Default buffer after each appointment in minutes (0..60)."""

    is_active: Mapped[bool] = mapped_column(default=True)
    """Inactive types cannot be booked."""

    is_deleted: Mapped[bool] = mapped_column(default=False)
    """Soft delete flag. True if this appointment type has been deleted."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider_settings = relationship("ProviderAppointmentTypeSettings", back_populates="appointment_type", cascade="all, delete-orphan")
    """Per-provider overrides of duration and buffer."""

    def __repr__(self) -> str:
        return f"<AppointmentType(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"
