"""
Patient model.

The scheduling engine only needs to know that a patient exists and has not
been deleted; the rest of the patient record is owned by the patient CRUD
layer.
"""

from sqlalchemy import String, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from datetime import datetime
from typing import Optional

from core.database import Base


class Patient(Base):
    """Patient entity that bookings and recurring series are made for."""

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the patient."""

    full_name: Mapped[str] = mapped_column(String(255))
    """Full name of the patient."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    """Timestamp when the patient was first created."""

    # Soft delete support
    is_deleted: Mapped[bool] = mapped_column(default=False)
    """Soft delete flag. True if this patient has been deleted."""

    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the patient was soft deleted (if applicable)."""

    # Relationships
    bookings = relationship("Booking", back_populates="patient")
    """Bookings made for this patient."""

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, full_name='{self.full_name}')>"
