"""
Recurring break model (lunch, admin time, ...).

A break rule repeats weekly on one day of week and may be limited to an
effective date range.
"""

from datetime import date, time, datetime
from typing import Optional
from sqlalchemy import Date, String, Time, TIMESTAMP, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from core.constants import MAX_LABEL_LENGTH
from core.database import Base


class BreakRule(Base):
    """Weekly recurring break in a provider's schedule."""

    __tablename__ = "break_rules"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the break rule."""

    provider_id: Mapped[int] = mapped_column(ForeignKey("providers.id", ondelete="CASCADE"))
    """Reference to the provider."""

    title: Mapped[str] = mapped_column(String(MAX_LABEL_LENGTH), default="Break")
    """Label shown on the calendar."""

    day_of_week: Mapped[int] = mapped_column()
    """Day of the week (0=Monday, 1=Tuesday, ..., 6=Sunday)."""

    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)

    is_active: Mapped[bool] = mapped_column(default=True)
    """Inactive rules are kept for history but never block time."""

    effective_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """First date the rule applies to. NULL means unbounded."""

    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """Last date the rule applies to. NULL means unbounded."""

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())

    # Relationships
    provider = relationship("Provider", back_populates="break_rules")

    __table_args__ = (
        Index('idx_break_rules_provider_day', 'provider_id', 'day_of_week'),
    )

    def applies_on(self, target_date: date) -> bool:
        """Whether this break blocks time on the given date."""
        if not self.is_active or target_date.weekday() != self.day_of_week:
            return False
        if self.effective_from is not None and target_date < self.effective_from:
            return False
        if self.effective_to is not None and target_date > self.effective_to:
            return False
        return True

    def __repr__(self) -> str:
        return f"<BreakRule(id={self.id}, provider_id={self.provider_id}, day={self.day_of_week}, {self.start_time}-{self.end_time})>"
