"""
Weekly working hours model.

One row per provider per day of week. A provider with no rows at all is
"unconfigured", which is different from a provider who is configured but
does not work on a given weekday (``is_working`` false).
"""

from datetime import time, datetime
from typing import Optional
from sqlalchemy import Time, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.database import Base

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


class WorkingHoursRule(Base):
    """Working window of a provider for one day of the week."""

    __tablename__ = "working_hours"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the rule."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))
    """Reference to the provider."""

    day_of_week: Mapped[int] = mapped_column()
    """Day of the week (0=Monday, 1=Tuesday, ..., 6=Sunday)."""

    is_working: Mapped[bool] = mapped_column(default=True)
    """Whether the provider works on this weekday."""

    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """Start of the working window. NULL when not working."""

    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    """End of the working window. NULL when not working."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="working_hours")

    __table_args__ = (
        UniqueConstraint('provider_id', 'day_of_week', name='uq_working_hours_provider_day'),
    )

    @property
    def day_name(self) -> str:
        """Get the day name for display."""
        return DAY_NAMES[self.day_of_week]

    def __repr__(self) -> str:
        return f"<WorkingHoursRule(provider_id={self.provider_id}, day={self.day_name}, {self.start_time}-{self.end_time})>"
