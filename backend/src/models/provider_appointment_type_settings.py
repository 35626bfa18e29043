"""
Per-provider appointment type settings.

Lets a provider offer an appointment type with a different duration or buffer
than the type's default. Fields left NULL fall back to the type default.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base


class ProviderAppointmentTypeSettings(Base):
    """Provider-specific override of an appointment type's duration/buffer."""

    __tablename__ = "provider_appointment_type_settings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the settings record."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))
    """Reference to the provider."""

    appointment_type_id: Mapped[int] = mapped_column(ForeignKey("appointment_types.id", ondelete="CASCADE"))
    """Reference to the appointment type."""

    duration_minutes: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Override duration. NULL uses the type default."""

    buffer_minutes: Mapped[Optional[int]] = mapped_column(nullable=True)
    """Override buffer. NULL uses the type default."""

    is_active: Mapped[bool] = mapped_column(default=True)
    """False means the provider does not offer this type."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    appointment_type = relationship("AppointmentType", back_populates="provider_settings")

    __table_args__ = (
        UniqueConstraint('provider_id', 'appointment_type_id', name='uq_provider_appointment_type_settings'),
    )
