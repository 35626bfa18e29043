"""
Date exception model.

A date exception replaces the weekly working-hours rule for one calendar
date, either with a different window (extra clinic day, shortened hours) or
by marking the date non-working.
"""

from datetime import date as date_type, time, datetime
from typing import Optional
from sqlalchemy import Date, String, Text, Time, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.constants import MAX_LABEL_LENGTH
from core.database import Base


class DateException(Base):
    """Override of a provider's weekly schedule for a single date."""

    __tablename__ = "date_exceptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the exception."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))
    """Reference to the provider."""

    date: Mapped[date_type] = mapped_column(Date)
    """The calendar date this exception applies to."""

    is_working: Mapped[bool] = mapped_column(default=False)
    """Whether the provider works on this date."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Start of the working window when ``is_working``."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """End of the working window when ``is_working``."""

    label: Mapped[str] = mapped_column(String(MAX_LABEL_LENGTH))
    """Short label shown on the calendar (e.g. 'Conference', 'Saturday clinic')."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional free-text description."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="date_exceptions")

    __table_args__ = (
        UniqueConstraint('provider_id', 'date', name='uq_date_exceptions_provider_date'),
    )

    def __repr__(self) -> str:
        return f"<DateException(provider_id={self.provider_id}, date={self.date}, is_working={self.is_working})>"
